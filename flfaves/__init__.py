"""
Fallen London Favourites storage

Keeps favourite/avoid tags for branches, storylets and cards in a flat
key-value store, and upgrades that store across every schema the tool has
ever written.

Quick Start:
    from flfaves import SqliteStorageArea, migrate, cleanup_storage

    local = SqliteStorageArea("~/.flfaves/storage.db", area="local")
    migrate(local)
    cleanup_storage(local)

CLI Usage:
    flfaves status
    flfaves migrate --area sync
    flfaves export backup.json
    flfaves import backup.json --yes

Default Store:
    ~/.flfaves/ (created automatically).
    Override with FLFAVES_STORE_PATH or --store.

Environment Variables:
    FLFAVES_STORE_PATH  - Override default store location
    FLFAVES_VERBOSE     - Set to 1 for debug logging
"""

__version__ = "0.1.0"

from .chunks import pack_set, unpack_set
from .cleanup import cleanup_storage, find_orphaned_chunks, find_zombie_keys
from .export import export_data, import_data, validate_import
from .migration import MigrationLoopError, UnknownSchemaError, detect_version, migrate, migrate_data
from .startup import on_installed
from .storage import MemoryStorageArea, SqliteStorageArea, load_faves, save_faves
from .sync import SyncScheduler
from .types import STORAGE_SCHEMA_VERSION, FaveSets, ImportResult

__all__ = [
    "pack_set",
    "unpack_set",
    "cleanup_storage",
    "find_orphaned_chunks",
    "find_zombie_keys",
    "export_data",
    "import_data",
    "validate_import",
    "MigrationLoopError",
    "UnknownSchemaError",
    "detect_version",
    "migrate",
    "migrate_data",
    "on_installed",
    "MemoryStorageArea",
    "SqliteStorageArea",
    "load_faves",
    "save_faves",
    "SyncScheduler",
    "STORAGE_SCHEMA_VERSION",
    "FaveSets",
    "ImportResult",
]
