"""
Chunked set encoding.

The underlying store limits the size of a single value, so a category's
ID set is split across numbered chunk keys plus an index key:

    branch_faves_keys = ["branch_faves_0", "branch_faves_1"]
    branch_faves_0    = [1, 2, ..., 512 ints]
    branch_faves_1    = [...]

The index is authoritative. Chunk keys it does not list are orphans and
are ignored on read (see cleanup.py for their removal).
"""

import re
from typing import Any, Iterable

from .types import MAX_PACK_ITEMS_PER_KEY, index_key, is_int_value


def chunk_key(category: str, n: int) -> str:
    """Name of the n-th chunk key for a category."""
    return f"{category}_{n}"


def chunk_pattern(category: str) -> re.Pattern:
    """Regex matching any chunk key of a category (``<category>_<digits>``)."""
    return re.compile(rf"^{re.escape(category)}_(\d+)$")


def pack_set(
    values: Iterable[int],
    category: str,
    chunk_size: int = MAX_PACK_ITEMS_PER_KEY,
) -> dict[str, Any]:
    """
    Encode a set of non-negative integers as chunk entries plus an index.

    Values are sorted ascending and sliced into consecutive groups of at
    most ``chunk_size``; the same set always yields the same chunks.
    An empty set yields only ``{<category>_keys: []}``.

    Args:
        values: Integer IDs (duplicates collapse)
        category: Category name used as the key prefix

    Returns:
        Mapping of storage keys to values, ready for ``storage.set()``
    """
    source = sorted(set(values))
    result: dict[str, Any] = {}
    keys: list[str] = []

    for n, start in enumerate(range(0, len(source), chunk_size)):
        name = chunk_key(category, n)
        result[name] = source[start:start + chunk_size]
        keys.append(name)

    result[index_key(category)] = keys
    return result


def unpack_set(data: dict[str, Any], category: str) -> set[int]:
    """
    Decode a category's set from a snapshot.

    Never raises: a missing or non-list index yields the empty set, and a
    listed chunk that is missing or not a list contributes nothing.
    Non-integer elements inside a chunk are skipped.
    """
    result: set[int] = set()
    keys = data.get(index_key(category))
    if not isinstance(keys, list):
        return result

    for name in keys:
        if not isinstance(name, str):
            continue
        values = data.get(name)
        if isinstance(values, list):
            result.update(v for v in values if is_int_value(v))

    return result


def index_names(data: dict[str, Any], category: str) -> list[str]:
    """Chunk names listed in a category's index, or [] if it is not a list."""
    keys = data.get(index_key(category))
    if not isinstance(keys, list):
        return []
    return [k for k in keys if isinstance(k, str)]
