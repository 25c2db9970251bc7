"""
Startup sequence.

Run once when the tool is installed or updated:
1. on a fresh install, restore data from the sync area (another device)
2. migrate local storage
3. sweep stale keys from both areas

No step may prevent the next one from running.
"""

import logging
from typing import Any, Callable, Optional

from .cleanup import cleanup_storage
from .migration import migrate
from .protocol import StorageAreaProtocol
from .sync import sync_to_local

logger = logging.getLogger(__name__)

INSTALL_REASONS = ("install", "update")


def on_installed(
    reason: str,
    local: StorageAreaProtocol,
    sync: Optional[StorageAreaProtocol] = None,
    *,
    request_update_check: Optional[Callable[[], Any]] = None,
) -> dict[str, Any]:
    """
    Migrate and clean storage after install or update.

    Args:
        reason: "install" or "update"
        local: The local storage area
        sync: The sync storage area, if available

    Returns:
        Dict with keys: restored, migrated, removed_local, removed_sync
    """
    if reason not in INSTALL_REASONS:
        raise ValueError(f"reason must be one of {INSTALL_REASONS}, got {reason!r}")

    result: dict[str, Any] = {
        "restored": False,
        "migrated": False,
        "removed_local": [],
        "removed_sync": [],
    }

    if reason == "install" and sync is not None:
        try:
            migrate(sync, request_update_check=request_update_check)
            result["restored"] = sync_to_local(
                local, sync, request_update_check=request_update_check,
            )
        except Exception as e:
            logger.warning("Restore from sync failed: %s", e)

    try:
        result["migrated"] = migrate(local, request_update_check=request_update_check)
    except Exception as e:
        logger.error("Local migration failed: %s", e)

    result["removed_local"] = cleanup_storage(local)
    if sync is not None:
        result["removed_sync"] = cleanup_storage(sync)

    return result
