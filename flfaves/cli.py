"""
CLI interface for favourites storage.

Usage:
    flfaves status
    flfaves migrate --area sync
    flfaves export backup.json
    flfaves import backup.json
    flfaves tag branch 12345
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .chunks import unpack_set
from .cleanup import cleanup_storage, find_orphaned_chunks, find_zombie_keys
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .export import (
    dump_export_file,
    export_data,
    import_data,
    load_export_file,
    sanitize_options,
    validate_import,
)
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .migration import UnknownSchemaError, detect_version, migrate
from .startup import on_installed
from .storage import SqliteStorageArea, get_option, load_faves, save_faves, set_option
from .toggle import apply_state, get_current_state, get_next_card_state, get_next_state
from .types import DATA_KEYS, DEFAULT_OPTIONS, KIND_CATEGORIES, STORAGE_SCHEMA_VERSION
from .update_check import make_update_checker

AREAS = ("local", "sync")

# Configure quiet mode by default; FLFAVES_VERBOSE=1 enables debug output
if os.environ.get("FLFAVES_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


# Global state for CLI options
_json_output = False
# Store resolved by the running command, for the error log
_store_path: Optional[Path] = None


def _version_callback(value: bool):
    if value:
        typer.echo(f"flfaves {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _json_callback(value: bool):
    global _json_output
    _json_output = value


app = typer.Typer(
    name="flfaves",
    help="Favourites storage: migration, cleanup, backup and restore.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v", help="Debug logging to stderr",
        callback=_verbose_callback, is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j", help="Output as JSON", callback=_json_callback,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version", help="Show version and exit",
        callback=_version_callback, is_eager=True,
    )] = None,
):
    """Favourites storage: migration, cleanup, backup and restore."""


StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar="FLFAVES_STORE_PATH",
        help="Path to the store directory (default: ~/.flfaves/)"
    )
]

AreaOption = Annotated[
    str,
    typer.Option("--area", "-a", help="Storage area: local or sync"),
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_config(store: Optional[Path]) -> StoreConfig:
    global _store_path
    path = Path(store).expanduser() if store is not None else get_default_store_path()
    _store_path = path
    config = load_or_create_config(path)
    configure_ops_log(path)
    return config


def _check_area(area: str) -> None:
    if area not in AREAS:
        typer.echo(f"Error: --area must be one of {', '.join(AREAS)}, got '{area}'", err=True)
        raise typer.Exit(1)


def _open_area(config: StoreConfig, area: str) -> SqliteStorageArea:
    _check_area(area)
    return SqliteStorageArea(config.database_path, area=area)


def _update_checker(config: StoreConfig):
    return make_update_checker(
        config.update_url, __version__, timeout=config.update_timeout,
    )


def _require_current(storage: SqliteStorageArea, config: StoreConfig) -> None:
    """Migrate before any edit; refuse to edit a store that stays behind."""
    migrate(storage, request_update_check=_update_checker(config))
    version = detect_version(storage.get(None))
    if version != STORAGE_SCHEMA_VERSION:
        typer.echo(
            f"Error: {storage.area} storage has unknown schema v{version}; not modified",
            err=True,
        )
        raise typer.Exit(1)


def _emit(payload: Any, text: str) -> None:
    if _json_output:
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        typer.echo(text)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("migrate")
def migrate_cmd(
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Upgrade a storage area to the current schema."""
    config = _get_config(store)
    with _open_area(config, area) as storage:
        before = detect_version(storage.get(None))
        changed = migrate(storage, request_update_check=_update_checker(config))
        after = detect_version(storage.get(None))

    if changed:
        text = f"Migrated {area} storage from v{before} to v{after}"
    elif after == STORAGE_SCHEMA_VERSION:
        text = f"{area} storage is already at v{after}"
    else:
        text = f"{area} storage has unknown schema v{after}; not migrated"
    _emit({"area": area, "from": before, "to": after, "migrated": changed}, text)
    if after != STORAGE_SCHEMA_VERSION:
        raise typer.Exit(1)


@app.command("cleanup")
def cleanup_cmd(
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Remove orphaned chunks and retired keys from a storage area."""
    config = _get_config(store)
    with _open_area(config, area) as storage:
        removed = cleanup_storage(storage)

    text = f"Removed {len(removed)} stale keys from {area} storage"
    if removed:
        text += ": " + ", ".join(removed)
    _emit({"area": area, "removed": removed}, text)


@app.command("startup")
def startup_cmd(
    install: Annotated[bool, typer.Option(
        "--install", help="Fresh install: restore data from the sync area first"
    )] = False,
    store: StoreOption = None,
):
    """Run the startup sequence on both storage areas."""
    config = _get_config(store)
    with _open_area(config, "local") as local, _open_area(config, "sync") as sync:
        result = on_installed(
            "install" if install else "update", local, sync,
            request_update_check=_update_checker(config),
        )

    lines = []
    if install:
        lines.append("Restored from sync" if result["restored"] else "Nothing restored from sync")
    lines.append("Migrated local storage" if result["migrated"] else "Local storage unchanged")
    lines.append(
        f"Removed {len(result['removed_local'])} stale local keys, "
        f"{len(result['removed_sync'])} stale sync keys"
    )
    _emit(result, "\n".join(lines))


@app.command("status")
def status_cmd(
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Show schema version, category sizes and options."""
    config = _get_config(store)
    with _open_area(config, area) as storage:
        data = storage.get(None)

    version = detect_version(data)
    counts = {key: len(unpack_set(data, key)) for key in DATA_KEYS}
    options = sanitize_options(data)
    orphans = find_orphaned_chunks(data)
    zombies = find_zombie_keys(data)

    payload = {
        "area": area,
        "schema": version,
        "current": version == STORAGE_SCHEMA_VERSION,
        "counts": counts,
        "options": options,
        "orphans": orphans,
        "zombies": zombies,
    }
    lines = [f"{area} storage: schema v{version}"
             + ("" if version == STORAGE_SCHEMA_VERSION else " (migration needed)")]
    lines += [f"  {key}: {n}" for key, n in counts.items()]
    lines += [f"  {key} = {value}" for key, value in options.items()]
    lines.append(f"  stale keys: {len(orphans)} orphaned, {len(zombies)} retired")
    _emit(payload, "\n".join(lines))


@app.command("export")
def export_cmd(
    output: Annotated[str, typer.Argument(
        help="Output file path (use '-' for stdout)"
    )],
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Export favourites and options to a JSON file."""
    config = _get_config(store)
    with _open_area(config, area) as storage:
        try:
            data = export_data(storage)
        except UnknownSchemaError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    if output == "-":
        dump_export_file(data, sys.stdout)
        return

    with open(output, "w", encoding="utf-8") as dest:
        dump_export_file(data, dest)
    total = sum(len(ids) for ids in data["data"].values())
    typer.echo(f"Exported {total} IDs to {output}", err=True)


@app.command("import")
def import_cmd(
    file: Annotated[str, typer.Argument(
        help="JSON export file to import ('-' for stdin, requires --yes)"
    )],
    yes: Annotated[bool, typer.Option(
        "--yes", "-y", help="Replace existing data without asking"
    )] = False,
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Replace stored favourites with the contents of an export file."""
    if file == "-" and not yes:
        # stdin is consumed by the file itself
        typer.echo("Error: --yes is required when importing from stdin", err=True)
        raise typer.Exit(1)
    if file != "-" and not Path(file).exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(1)

    try:
        raw = load_export_file(file)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    result = validate_import(raw)
    if not result.valid:
        typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(1)

    total = sum(len(ids) for ids in result.data["data"].values())
    if not yes and not typer.confirm(
        f"This will replace all {area} data with {total} IDs from {file}. Continue?"
    ):
        raise typer.Exit(0)

    config = _get_config(store)
    with _open_area(config, area) as storage:
        import_data(storage, result.data)

    _emit(
        {"area": area, "imported": total, "options": result.data["options"]},
        f"Imported {total} IDs into {area} storage",
    )


@app.command("tag")
def tag_cmd(
    kind: Annotated[str, typer.Argument(help="Element kind: branch, storylet or card")],
    id: Annotated[int, typer.Argument(help="Element ID")],
    modifier: Annotated[bool, typer.Option(
        "--modifier", "-m", help="Treat as a modifier click (modifier_click mode)"
    )] = False,
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Advance the favourite/avoid state of one element."""
    if kind not in KIND_CATEGORIES:
        typer.echo(f"Error: kind must be one of {', '.join(KIND_CATEGORIES)}, got '{kind}'", err=True)
        raise typer.Exit(1)
    if id < 0:
        typer.echo("Error: ID must be non-negative", err=True)
        raise typer.Exit(1)

    config = _get_config(store)
    with _open_area(config, area) as storage:
        _require_current(storage, config)
        sets, options = load_faves(storage)
        faves, avoids = sets.pair(kind)
        current = get_current_state(id, faves, avoids)
        next_state = get_next_card_state if kind == "card" else get_next_state
        state = next_state(current, options["switch_mode"], modifier)
        apply_state(id, state, faves, avoids)
        save_faves(storage, sets)

    _emit({"kind": kind, "id": id, "from": current, "to": state},
          f"{kind} {id}: {current} -> {state}")


@app.command("option")
def option_cmd(
    key: Annotated[str, typer.Argument(help="Option name")],
    value: Annotated[Optional[str], typer.Argument(help="New value (omit to read)")] = None,
    area: AreaOption = "local",
    store: StoreOption = None,
):
    """Read or set an option."""
    if key not in DEFAULT_OPTIONS:
        typer.echo(f"Error: unknown option '{key}' (expected one of {', '.join(DEFAULT_OPTIONS)})", err=True)
        raise typer.Exit(1)

    config = _get_config(store)
    with _open_area(config, area) as storage:
        if value is not None:
            _require_current(storage, config)
            try:
                set_option(storage, key, value)
            except ValueError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(1)
        current = get_option(storage, key)

    _emit({key: current}, f"{key} = {current}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="flfaves CLI", store_path=_store_path)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
