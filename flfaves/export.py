"""
Export and import of favourites.

The export file is independent of the storage encoding:

    {
      "format": "fallen-london-favourites",
      "version": 2,
      "exported_at": "<ISO-8601>",
      "data": {"branch_faves": [...], ..., "card_avoids": [...]},
      "options": {"branch_reorder_mode": ..., "switch_mode": ..., "click_protection": ...}
    }

Version 1 files carried a ``block_action`` boolean instead of
``click_protection``; they are still accepted. Files without a format
marker are treated as raw storage dumps and run through the migration
chain, so an accidental dump of the store can still be restored.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, TextIO, Union

from .chunks import pack_set, unpack_set
from .migration import UnknownSchemaError, detect_version, migrate_data
from .protocol import StorageAreaProtocol
from .types import (
    DATA_KEYS,
    DEFAULT_OPTIONS,
    EXPORT_FORMAT,
    EXPORT_VERSION,
    INDEX_SUFFIX,
    LEGACY_BLOCK_ACTION,
    OPTION_VALUES,
    SCHEMA_KEY,
    STORAGE_SCHEMA_VERSION,
    ImportResult,
    is_number,
    utc_now,
)

logger = logging.getLogger(__name__)

# User-facing validation messages
ERR_INVALID_FORMAT = "Invalid file format"
ERR_NOT_EXPORT = "Not a Fallen London Favourites export file"
ERR_NEWER_VERSION = "This file was created by a newer version. Please update the extension"
ERR_CORRUPTED = "File data is corrupted"


def sanitize_options(raw: dict[str, Any]) -> dict[str, str]:
    """
    Keep valid option values, replace the rest with defaults.

    A legacy ``block_action`` boolean is translated to click_protection
    (True -> "shift", False -> "off") when click_protection is absent.
    """
    options = {}
    for key, default in DEFAULT_OPTIONS.items():
        value = raw.get(key)
        options[key] = value if value in OPTION_VALUES[key] else default

    block_action = raw.get(LEGACY_BLOCK_ACTION)
    if "click_protection" not in raw and isinstance(block_action, bool):
        options["click_protection"] = "shift" if block_action else "off"

    return options


def build_export(raw: dict[str, Any], *, exported_at: Optional[str] = None) -> dict[str, Any]:
    """Derive an export envelope from a current-schema snapshot."""
    return {
        "format": EXPORT_FORMAT,
        "version": EXPORT_VERSION,
        "exported_at": utc_now() if exported_at is None else exported_at,
        "data": {key: sorted(unpack_set(raw, key)) for key in DATA_KEYS},
        "options": sanitize_options(raw),
    }


def export_data(storage: StorageAreaProtocol) -> dict[str, Any]:
    """
    Export a storage area.

    An area still on an older schema is migrated in memory first, so IDs
    held under retired categories are included. The area is not written.

    Returns:
        Export dict with sorted ID lists and sanitized options

    Raises:
        UnknownSchemaError: the area's schema cannot be migrated
    """
    result = build_export(migrate_data(storage.get(None)))
    logger.info(
        "Exported %d IDs",
        sum(len(ids) for ids in result["data"].values()),
    )
    return result


def import_data(storage: StorageAreaProtocol, file: dict[str, Any]) -> None:
    """
    Replace the contents of a storage area with a validated export.

    The area is cleared first, so no orphaned chunks or zombie keys survive.
    """
    options = sanitize_options(file.get("options") or {})
    storage_data: dict[str, Any] = {SCHEMA_KEY: STORAGE_SCHEMA_VERSION}
    storage_data.update(options)
    for key in DATA_KEYS:
        storage_data.update(pack_set(file["data"][key], key))

    storage.clear()
    storage.set(storage_data)
    logger.info("Imported export file (version %s)", file.get("version"))


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def _id_list(value: Any) -> Optional[list[int]]:
    """Whole numbers as ints, or None if anything else is found."""
    if not isinstance(value, list):
        return None
    result = []
    for v in value:
        if not is_number(v) or (isinstance(v, float) and not v.is_integer()):
            return None
        result.append(int(v))
    return result


def _validate_native(obj: dict[str, Any]) -> ImportResult:
    version = obj.get("version")
    if not is_number(version):
        return ImportResult.fail(ERR_INVALID_FORMAT)
    if version > EXPORT_VERSION:
        return ImportResult.fail(ERR_NEWER_VERSION)

    data = obj.get("data")
    if not isinstance(data, dict):
        return ImportResult.fail(ERR_CORRUPTED)

    ids: dict[str, list[int]] = {}
    for key in DATA_KEYS:
        values = _id_list(data.get(key))
        if values is None:
            return ImportResult.fail(ERR_CORRUPTED)
        ids[key] = values

    options = obj.get("options")
    exported_at = obj.get("exported_at")
    return ImportResult.ok({
        "format": EXPORT_FORMAT,
        "version": version,
        "exported_at": exported_at if isinstance(exported_at, str) else "",
        "data": ids,
        "options": sanitize_options(options if isinstance(options, dict) else {}),
    })


def _validate_raw_dump(obj: dict[str, Any]) -> ImportResult:
    version = detect_version(obj)
    has_index = any(key.endswith(INDEX_SUFFIX) for key in obj)

    if version >= STORAGE_SCHEMA_VERSION and not has_index:
        return ImportResult.fail(ERR_NOT_EXPORT)
    if version > STORAGE_SCHEMA_VERSION:
        return ImportResult.fail(ERR_NEWER_VERSION)

    try:
        migrated = migrate_data(obj)
    except UnknownSchemaError:
        return ImportResult.fail(ERR_CORRUPTED)

    logger.info("Recovered raw storage dump (schema v%s)", version)
    return ImportResult.ok(build_export(migrated, exported_at=""))


def validate_import(raw: Any) -> ImportResult:
    """
    Validate untrusted input (parsed JSON) as an import file.

    Never raises for bad input; the result carries a short user-facing
    error instead.
    """
    if not isinstance(raw, dict):
        return ImportResult.fail(ERR_INVALID_FORMAT)

    if "format" in raw:
        if raw["format"] != EXPORT_FORMAT:
            return ImportResult.fail(ERR_NOT_EXPORT)
        return _validate_native(raw)

    return _validate_raw_dump(raw)


# -----------------------------------------------------------------------------
# Files
# -----------------------------------------------------------------------------

def load_export_file(source: Union[str, Path]) -> Any:
    """
    Parse a JSON file ('-' for stdin).

    Raises:
        ValueError: content is not valid JSON
    """
    try:
        if str(source) == "-":
            return json.loads(sys.stdin.read())
        return json.loads(Path(source).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(ERR_INVALID_FORMAT) from e


def dump_export_file(data: dict[str, Any], dest: TextIO) -> None:
    json.dump(data, dest, indent=2, ensure_ascii=False)
    dest.write("\n")
