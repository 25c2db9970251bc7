"""
Storage schema migration.

Schema history:
    v0  branch_faves is a plain list of IDs (no version marker)
    v1  plain lists renamed: branch_fave_array, storylet_fave_array,
        card_protect_array, card_discard_array
    v2  chunked sets (see chunks.py); block_action is "true"/"false";
        card categories still named card_protects / card_discards.
        The legacy unversioned release wrote this shape without a marker.
    v3  card categories renamed to card_faves / card_avoids;
        block_action is a boolean
    v4  block_action replaced by click_protection ("off"/"shift"/"confirm")

``migrate_data`` is pure: each step shallow-copies its input and applies
explicit overrides and deletions, so the caller's snapshot is never
touched. ``migrate`` is the wrapper that reads and writes a live store.
"""

import logging
from typing import Any, Callable, Optional

from .chunks import index_names, pack_set, unpack_set
from .protocol import StorageAreaProtocol
from .types import (
    INDEX_SUFFIX,
    LEGACY_BLOCK_ACTION,
    OBSOLETE_CATEGORIES,
    SCHEMA_KEY,
    STORAGE_SCHEMA_VERSION,
    index_key,
    is_int_value,
    is_number,
)

logger = logging.getLogger(__name__)

# v0 plain list key, and the v1 plain list keys with their v2 categories
V0_KEY = "branch_faves"
V1_ARRAYS = {
    "branch_fave_array": "branch_faves",
    "storylet_fave_array": "storylet_faves",
    "card_protect_array": "card_protects",
    "card_discard_array": "card_discards",
}


class UnknownSchemaError(ValueError):
    """Snapshot carries a schema version this release cannot migrate."""

    def __init__(self, version: Any, expected: int = STORAGE_SCHEMA_VERSION):
        self.version = version
        self.expected = expected
        super().__init__(
            f"Unknown data storage schema (got {version}, expected {expected})"
        )


class MigrationLoopError(RuntimeError):
    """A migration step did not advance the schema version."""


def detect_version(raw: dict[str, Any]) -> Any:
    """
    Determine the schema version of a raw snapshot.

    Heuristics, first match wins:
    1. numeric storage_schema marker, returned verbatim (may be > current)
    2. branch_fave_array present -> 1
    3. branch_faves holding a plain list -> 0
    4. any key ending in _keys -> 2 (legacy unversioned chunked format)
    5. otherwise the current version (fresh install, nothing to migrate)
    """
    marker = raw.get(SCHEMA_KEY)
    if is_number(marker):
        return marker

    if "branch_fave_array" in raw:
        return 1

    if isinstance(raw.get(V0_KEY), list):
        return 0

    if any(key.endswith(INDEX_SUFFIX) for key in raw):
        return 2

    return STORAGE_SCHEMA_VERSION


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------

def _int_list(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    return [v for v in value if is_int_value(v)]


def _v0_to_v1(data: dict[str, Any]) -> dict[str, Any]:
    """Rename the plain branch_faves list to branch_fave_array."""
    nxt = dict(data)
    if isinstance(data.get(V0_KEY), list):
        nxt["branch_fave_array"] = nxt.pop(V0_KEY)
    nxt[SCHEMA_KEY] = 1
    return nxt


def _v1_to_v2(data: dict[str, Any]) -> dict[str, Any]:
    """Convert the four plain lists to chunked sets."""
    nxt = dict(data)
    for legacy_key, category in V1_ARRAYS.items():
        nxt.update(pack_set(_int_list(data.get(legacy_key)), category))
        nxt.pop(legacy_key, None)
    nxt[SCHEMA_KEY] = 2
    return nxt


def _merge_obsolete(
    data: dict[str, Any],
    nxt: dict[str, Any],
    obsolete: str,
    target: str,
) -> None:
    """
    Fold an obsolete card category into its replacement, in place on ``nxt``.

    Absent obsolete index: target untouched. Empty obsolete index: target
    index created if missing. Non-empty: union with the target and re-pack.
    """
    obsolete_index = index_key(obsolete)
    if obsolete_index not in data:
        return

    to_remove = [obsolete_index]
    obsolete_chunks = index_names(data, obsolete)
    packed: dict[str, Any] = {}

    if obsolete_chunks:
        merged = unpack_set(data, target) | unpack_set(data, obsolete)
        packed = pack_set(merged, target)
        nxt.update(packed)
        to_remove.extend(obsolete_chunks)
        # Chunks of the old target index that the re-pack no longer lists
        to_remove.extend(n for n in index_names(data, target) if n not in packed)
    elif index_key(target) not in data:
        nxt[index_key(target)] = []

    for key in to_remove:
        if key not in packed:
            nxt.pop(key, None)

    logger.debug("Merged %s into %s (%d chunks)", obsolete, target, len(obsolete_chunks))


def _v2_to_v3(data: dict[str, Any]) -> dict[str, Any]:
    """Coerce block_action to bool; rename card_protects/card_discards."""
    nxt = dict(data)

    block_action = data.get(LEGACY_BLOCK_ACTION)
    if isinstance(block_action, str):
        nxt[LEGACY_BLOCK_ACTION] = block_action == "true"

    for obsolete, target in OBSOLETE_CATEGORIES.items():
        _merge_obsolete(data, nxt, obsolete, target)

    nxt[SCHEMA_KEY] = 3
    return nxt


def _v3_to_v4(data: dict[str, Any]) -> dict[str, Any]:
    """Replace the block_action boolean with click_protection."""
    nxt = dict(data)
    nxt["click_protection"] = "shift" if data.get(LEGACY_BLOCK_ACTION) is True else "off"
    nxt.pop(LEGACY_BLOCK_ACTION, None)
    nxt[SCHEMA_KEY] = 4
    return nxt


# Version -> single step producing version + 1
MIGRATION_STEPS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _v0_to_v1,
    1: _v1_to_v2,
    2: _v2_to_v3,
    3: _v3_to_v4,
}


# -----------------------------------------------------------------------------
# Pure migration
# -----------------------------------------------------------------------------

def migrate_data(data: dict[str, Any]) -> dict[str, Any]:
    """
    Upgrade a raw snapshot to the current schema.

    Returns a new dict; the input is never mutated. A snapshot already at
    the current version comes back as an equal copy.

    Raises:
        UnknownSchemaError: detected version is not in the migration chain
        MigrationLoopError: a step failed to advance the version
    """
    version = detect_version(data)
    if version == STORAGE_SCHEMA_VERSION:
        return dict(data)
    if version not in MIGRATION_STEPS:
        raise UnknownSchemaError(version)

    current = data
    for _ in range(STORAGE_SCHEMA_VERSION - int(version)):
        nxt = MIGRATION_STEPS[version](current)
        next_version = detect_version(nxt)
        if not is_number(next_version) or next_version <= version:
            raise MigrationLoopError(
                f"Migration step from v{version} did not advance (got {next_version})"
            )
        logger.debug("Migrated snapshot v%s -> v%s", version, next_version)
        current, version = nxt, next_version
        if version == STORAGE_SCHEMA_VERSION:
            return current
        if version not in MIGRATION_STEPS:
            raise UnknownSchemaError(version)

    raise MigrationLoopError(
        f"Migration stopped at v{version}, expected v{STORAGE_SCHEMA_VERSION}"
    )


def plan_migration(data: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """
    Migrate a snapshot and list the keys the store must drop.

    Returns:
        (migrated snapshot, keys present in ``data`` but not in the result)
    """
    migrated = migrate_data(data)
    removed = [key for key in data if key not in migrated]
    return migrated, removed


# -----------------------------------------------------------------------------
# Live storage
# -----------------------------------------------------------------------------

def _request_update(request_update_check: Optional[Callable[[], Any]]) -> None:
    if request_update_check is None:
        return
    try:
        request_update_check()
    except Exception as e:
        logger.debug("Update check failed: %s", e)


def migrate(
    storage: StorageAreaProtocol,
    *,
    request_update_check: Optional[Callable[[], Any]] = None,
) -> bool:
    """
    Migrate a live storage area in place.

    Reads the whole area; if it is already current nothing is written.
    Otherwise writes the migrated snapshot, then removes keys the migration
    dropped. An unknown schema (typically synced from a newer release) is
    logged and triggers a best-effort update check instead of raising.

    Read failures propagate to the caller.

    Returns:
        True if the store was rewritten
    """
    data = storage.get(None)
    version = detect_version(data)
    if version == STORAGE_SCHEMA_VERSION:
        return False

    try:
        migrated, to_remove = plan_migration(data)
    except UnknownSchemaError as e:
        logger.error("%s", e)
        _request_update(request_update_check)
        return False

    storage.set(migrated)
    if to_remove:
        storage.remove(to_remove)

    logger.info(
        "Migrated %s storage v%s -> v%s (%d keys removed)",
        getattr(storage, "area", "storage"), version, STORAGE_SCHEMA_VERSION, len(to_remove),
    )
    return True
