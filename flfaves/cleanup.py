"""
Stale key cleanup.

Two kinds of garbage accumulate in a store:
- orphaned chunks: ``<category>_<n>`` keys not listed in the category index,
  left behind when a set shrinks or by merge-based sync
- zombie keys: keys of retired schema versions that migration removed
  but a sync merge wrote back

Detection is pure; ``cleanup_storage`` performs the single remove call.
"""

import logging
from typing import Any

from .chunks import chunk_pattern, index_names
from .protocol import StorageAreaProtocol
from .types import DATA_KEYS, OBSOLETE_CATEGORIES

logger = logging.getLogger(__name__)

# Live categories plus obsolete ones, to catch leftovers of partial v2->v3 merges
CHUNK_CATEGORIES = DATA_KEYS + tuple(OBSOLETE_CATEGORIES)

ZOMBIE_KEYS = (
    "block_action",
    "branch_fave_array",
    "branch_faves",
    "storylet_fave_array",
    "card_protect_array",
    "card_discard_array",
    "card_protects_keys",
    "card_discards_keys",
)


def find_orphaned_chunks(data: dict[str, Any]) -> list[str]:
    """Chunk keys present in ``data`` but not referenced by their index."""
    orphans: list[str] = []

    for category in CHUNK_CATEGORIES:
        valid = set(index_names(data, category))
        pattern = chunk_pattern(category)
        for key in data:
            if pattern.match(key) and key not in valid:
                orphans.append(key)

    return orphans


def find_zombie_keys(data: dict[str, Any]) -> list[str]:
    """Retired keys still present in ``data``."""
    return [key for key in ZOMBIE_KEYS if key in data]


def find_stale_keys(data: dict[str, Any]) -> list[str]:
    """Orphans and zombies, in that order, without duplicates."""
    seen: set[str] = set()
    result = []
    for key in find_orphaned_chunks(data) + find_zombie_keys(data):
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result


def cleanup_storage(storage: StorageAreaProtocol) -> list[str]:
    """
    Remove orphaned chunks and zombie keys from a storage area.

    Best-effort: read and remove failures are logged, never raised.
    Nothing is written on clean storage.

    Returns:
        Keys that were removed (empty if none, or if the sweep failed)
    """
    area = getattr(storage, "area", "storage")
    try:
        to_remove = find_stale_keys(storage.get(None))
        if not to_remove:
            return []
        storage.remove(to_remove)
    except Exception as e:
        logger.warning("Cleanup of %s storage failed: %s", area, e)
        return []

    logger.info("Removed %d stale keys from %s storage", len(to_remove), area)
    logger.debug("Stale keys: %s", ", ".join(to_remove))
    return to_remove
