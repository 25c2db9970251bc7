"""
Data types and constants for favourites storage.

The storage schema is a convention over a flat key-value store. Everything
that names a key or a valid option value lives here so the migration,
cleanup and export code agree on the same vocabulary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Current storage schema (value of the storage_schema key)
STORAGE_SCHEMA_VERSION = 4
SCHEMA_KEY = "storage_schema"

# Per-key size limit of the underlying store, in integers per chunk
MAX_PACK_ITEMS_PER_KEY = 512
INDEX_SUFFIX = "_keys"

# External export file format
EXPORT_FORMAT = "fallen-london-favourites"
EXPORT_VERSION = 2

# Live categories, in export order
DATA_KEYS = (
    "branch_faves",
    "branch_avoids",
    "storylet_faves",
    "storylet_avoids",
    "card_faves",
    "card_avoids",
)

# Categories renamed in v3: obsolete name -> live name
OBSOLETE_CATEGORIES = {
    "card_protects": "card_faves",
    "card_discards": "card_avoids",
}

# Element kind -> (faves category, avoids category)
KIND_CATEGORIES = {
    "branch": ("branch_faves", "branch_avoids"),
    "storylet": ("storylet_faves", "storylet_avoids"),
    "card": ("card_faves", "card_avoids"),
}

BRANCH_REORDER_MODES = ("branch_no_reorder", "branch_reorder_active", "branch_reorder_all")
SWITCH_MODES = ("click_through", "modifier_click")
CLICK_PROTECTION_MODES = ("off", "shift", "confirm")

OPTION_VALUES = {
    "branch_reorder_mode": BRANCH_REORDER_MODES,
    "switch_mode": SWITCH_MODES,
    "click_protection": CLICK_PROTECTION_MODES,
}

DEFAULT_OPTIONS = {
    "branch_reorder_mode": "branch_reorder_active",
    "switch_mode": "click_through",
    "click_protection": "off",
}

# Legacy option key, boolean in v3 and "true"/"false" in v2
LEGACY_BLOCK_ACTION = "block_action"


def utc_now() -> str:
    """Current UTC timestamp in ISO-8601 format."""
    return datetime.now(timezone.utc).isoformat()


def index_key(category: str) -> str:
    """Name of the chunk index key for a category."""
    return f"{category}{INDEX_SUFFIX}"


def is_int_value(value: Any) -> bool:
    """True for JSON numbers that are integers (bool excluded)."""
    return isinstance(value, int) and not isinstance(value, bool)


def is_number(value: Any) -> bool:
    """True for JSON numbers (bool excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class ImportResult:
    """
    Outcome of validating an import file.

    Exactly one of ``data`` (a normalized export dict) or ``error``
    (a short user-facing message) is set.
    """
    valid: bool
    data: Optional[dict] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: dict) -> "ImportResult":
        return cls(valid=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ImportResult":
        return cls(valid=False, error=error)


@dataclass
class FaveSets:
    """The six live categories as in-memory sets."""
    branch_faves: set[int] = field(default_factory=set)
    branch_avoids: set[int] = field(default_factory=set)
    storylet_faves: set[int] = field(default_factory=set)
    storylet_avoids: set[int] = field(default_factory=set)
    card_faves: set[int] = field(default_factory=set)
    card_avoids: set[int] = field(default_factory=set)

    def category(self, name: str) -> set[int]:
        if name not in DATA_KEYS:
            raise KeyError(f"Unknown category: {name}")
        return getattr(self, name)

    def pair(self, kind: str) -> tuple[set[int], set[int]]:
        """(faves, avoids) sets for an element kind."""
        if kind not in KIND_CATEGORIES:
            raise KeyError(f"Unknown element kind: {kind}")
        faves, avoids = KIND_CATEGORIES[kind]
        return getattr(self, faves), getattr(self, avoids)
