"""
Configuration management for favourites stores.

The configuration is stored as a TOML file in the store directory.
It specifies sync timing and where to look for updates.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w

from .sync import DEFAULT_SYNC_PERIOD


CONFIG_FILENAME = "flfaves.toml"
CONFIG_VERSION = 1
DATABASE_FILENAME = "storage.db"
DEFAULT_UPDATE_URL = "https://pypi.org/pypi/fl-favourites/json"


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    sync_period: float = DEFAULT_SYNC_PERIOD
    update_url: Optional[str] = DEFAULT_UPDATE_URL
    update_timeout: float = 5.0

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """Path to the SQLite file holding both storage areas."""
        return self.path / DATABASE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory: FLFAVES_STORE_PATH, else ~/.flfaves."""
    env = os.environ.get("FLFAVES_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".flfaves"


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    version = data.get("store", {}).get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError(f"store.version must be an integer, got {version!r}")
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    sync = data.get("sync", {})
    update = data.get("update", {})
    period = sync.get("period", DEFAULT_SYNC_PERIOD)
    if not isinstance(period, (int, float)) or period < 0:
        raise ValueError(f"sync.period must be a non-negative number, got {period!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        sync_period=float(period),
        # An empty string disables the update check
        update_url=update.get("url", DEFAULT_UPDATE_URL) or None,
        update_timeout=float(update.get("timeout", 5.0)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "sync": {
            "period": config.sync_period,
        },
        "update": {
            "url": config.update_url or "",
            "timeout": config.update_timeout,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
