"""
Storage areas and typed accessors.

Two concrete areas implement StorageAreaProtocol:
- MemoryStorageArea: dict-backed, for tests and ephemeral use
- SqliteStorageArea: JSON values in a SQLite table; several named areas
  (e.g. "local" and "sync") can share one database file while keeping
  separate key spaces

Values are copied on the way in and out, so callers never alias stored data.
"""

import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .chunks import pack_set, unpack_set
from .export import sanitize_options
from .protocol import ChangeListener, StorageAreaProtocol
from .types import (
    DATA_KEYS,
    DEFAULT_OPTIONS,
    OPTION_VALUES,
    SCHEMA_KEY,
    STORAGE_SCHEMA_VERSION,
    FaveSets,
    index_key,
)

logger = logging.getLogger(__name__)

KeysArg = Optional[Union[str, list[str], tuple, dict[str, Any]]]

# SQLite caps bound parameters per statement
_SQL_BATCH = 500


def _key_list(keys: Union[str, Iterable[str]]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class _ObservableMixin:
    """Change listener bookkeeping shared by storage areas."""

    area: str

    def _init_listeners(self) -> None:
        self._listeners: list[ChangeListener] = []

    def add_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, changes: dict[str, dict[str, Any]]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(changes, self.area)
            except Exception as e:
                logger.warning("Storage listener failed for %s: %s", self.area, e)


class MemoryStorageArea(_ObservableMixin):
    """In-memory storage area."""

    def __init__(self, initial: Optional[dict[str, Any]] = None, area: str = "local"):
        self.area = area
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._init_listeners()

    def get(self, keys: KeysArg = None) -> dict[str, Any]:
        if keys is None:
            return copy.deepcopy(self._data)
        if isinstance(keys, dict):
            return {
                k: copy.deepcopy(self._data[k]) if k in self._data else default
                for k, default in keys.items()
            }
        return {k: copy.deepcopy(self._data[k]) for k in _key_list(keys) if k in self._data}

    def set(self, items: dict[str, Any]) -> None:
        changes = {}
        for key, value in items.items():
            change = {"new_value": copy.deepcopy(value)}
            if key in self._data:
                change["old_value"] = self._data[key]
            self._data[key] = copy.deepcopy(value)
            changes[key] = change
        self._notify(changes)

    def remove(self, keys: Union[str, Iterable[str]]) -> None:
        changes = {}
        for key in _key_list(keys):
            if key in self._data:
                changes[key] = {"old_value": self._data.pop(key)}
        self._notify(changes)

    def clear(self) -> None:
        changes = {k: {"old_value": v} for k, v in self._data.items()}
        self._data = {}
        self._notify(changes)


class SqliteStorageArea(_ObservableMixin):
    """
    SQLite-backed storage area.

    One row per key, value stored as JSON text. Every call commits.
    Access is serialized with a lock so the sync timer thread can share
    the connection.
    """

    def __init__(self, db_path: Path, area: str = "local"):
        """
        Args:
            db_path: Path to SQLite database file
            area: Name of the key space within the database
        """
        self.area = area
        self._db_path = Path(db_path).expanduser()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_listeners()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS storage (
                area TEXT NOT NULL,
                key TEXT NOT NULL,
                value_json TEXT NOT NULL,
                PRIMARY KEY (area, key)
            )
        """)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _select(self, keys: Optional[list[str]]) -> dict[str, Any]:
        if keys is None:
            cursor = self._conn.execute(
                "SELECT key, value_json FROM storage WHERE area = ?", (self.area,)
            )
            return {row[0]: json.loads(row[1]) for row in cursor}

        result: dict[str, Any] = {}
        for start in range(0, len(keys), _SQL_BATCH):
            batch = keys[start:start + _SQL_BATCH]
            placeholders = ",".join("?" * len(batch))
            cursor = self._conn.execute(f"""
                SELECT key, value_json FROM storage
                WHERE area = ? AND key IN ({placeholders})
            """, (self.area, *batch))
            for row in cursor:
                result[row[0]] = json.loads(row[1])
        return result

    # -------------------------------------------------------------------------
    # StorageAreaProtocol
    # -------------------------------------------------------------------------

    def get(self, keys: KeysArg = None) -> dict[str, Any]:
        with self._lock:
            if keys is None:
                return self._select(None)
            if isinstance(keys, dict):
                found = self._select(list(keys))
                return {k: found[k] if k in found else default for k, default in keys.items()}
            return self._select(_key_list(keys))

    def set(self, items: dict[str, Any]) -> None:
        if not items:
            return
        rows = [
            (self.area, key, json.dumps(value, ensure_ascii=False))
            for key, value in items.items()
        ]
        with self._lock:
            old = self._select(list(items)) if self._listeners else {}
            with self._conn:
                self._conn.executemany("""
                    INSERT OR REPLACE INTO storage (area, key, value_json)
                    VALUES (?, ?, ?)
                """, rows)

        changes = {}
        for key, value in items.items():
            change = {"new_value": json.loads(json.dumps(value))}
            if key in old:
                change["old_value"] = old[key]
            changes[key] = change
        self._notify(changes)

    def remove(self, keys: Union[str, Iterable[str]]) -> None:
        key_list = _key_list(keys)
        if not key_list:
            return
        with self._lock:
            old = self._select(key_list) if self._listeners else {}
            with self._conn:
                self._conn.executemany(
                    "DELETE FROM storage WHERE area = ? AND key = ?",
                    [(self.area, key) for key in key_list],
                )
        self._notify({k: {"old_value": v} for k, v in old.items()})

    def clear(self) -> None:
        with self._lock:
            old = self._select(None) if self._listeners else {}
            with self._conn:
                self._conn.execute("DELETE FROM storage WHERE area = ?", (self.area,))
        self._notify({k: {"old_value": v} for k, v in old.items()})

    def count(self) -> int:
        """Number of keys in this area."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM storage WHERE area = ?", (self.area,)
            )
            return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


# -----------------------------------------------------------------------------
# Typed accessors
# -----------------------------------------------------------------------------

def get_option(storage: StorageAreaProtocol, key: str) -> str:
    """Read one option, falling back to its default if absent or invalid."""
    if key not in DEFAULT_OPTIONS:
        raise KeyError(f"Unknown option: {key}")
    value = storage.get({key: DEFAULT_OPTIONS[key]})[key]
    return value if value in OPTION_VALUES[key] else DEFAULT_OPTIONS[key]


def set_option(storage: StorageAreaProtocol, key: str, value: str) -> None:
    """Write one option after checking it against the allowed values."""
    if key not in DEFAULT_OPTIONS:
        raise KeyError(f"Unknown option: {key}")
    if value not in OPTION_VALUES[key]:
        allowed = ", ".join(OPTION_VALUES[key])
        raise ValueError(f"Invalid value for {key}: {value!r} (expected one of {allowed})")
    storage.set({key: value})


def get_options(storage: StorageAreaProtocol) -> dict[str, Any]:
    """Whole snapshot with option, index and schema defaults filled in."""
    data = storage.get(None)
    defaults: dict[str, Any] = dict(DEFAULT_OPTIONS)
    defaults.update({index_key(c): [] for c in DATA_KEYS})
    defaults[SCHEMA_KEY] = STORAGE_SCHEMA_VERSION
    for key, value in defaults.items():
        data.setdefault(key, value)
    return data


def set_options(storage: StorageAreaProtocol, data: dict[str, Any]) -> None:
    """Write a migrated snapshot, stamped with the current schema version."""
    storage.set({**data, SCHEMA_KEY: STORAGE_SCHEMA_VERSION})


def load_faves(storage: StorageAreaProtocol) -> tuple[FaveSets, dict[str, str]]:
    """Unpack all six categories and the sanitized options."""
    data = storage.get(None)
    sets = FaveSets(**{c: unpack_set(data, c) for c in DATA_KEYS})
    return sets, sanitize_options(data)


def save_faves(storage: StorageAreaProtocol, sets: FaveSets) -> None:
    """
    Pack all six categories and write them in one call.

    The write carries the schema marker; an unmarked store with index keys
    would otherwise be read back as legacy v2. Migrate the area before
    calling this.
    """
    data: dict[str, Any] = {SCHEMA_KEY: STORAGE_SCHEMA_VERSION}
    for category in DATA_KEYS:
        data.update(pack_set(sets.category(category), category))
    storage.set(data)
