"""
Two-way sync between the local and sync storage areas.

Local changes are pushed to sync at most once per period; changes inside
the period are debounced with a timer. Changes arriving from the sync
area are migrated and copied into local straight away.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Optional

from .cleanup import cleanup_storage
from .migration import migrate
from .protocol import StorageAreaProtocol

logger = logging.getLogger(__name__)

# Seconds between pushes to the sync area
DEFAULT_SYNC_PERIOD = 3.0


def sync_to_local(
    local: StorageAreaProtocol,
    sync: StorageAreaProtocol,
    *,
    request_update_check: Optional[Callable[[], Any]] = None,
) -> bool:
    """
    Migrate the sync area, then copy it into local.

    Returns:
        True on success; failures are logged
    """
    try:
        migrate(sync, request_update_check=request_update_check)
        local.set(sync.get(None))
    except Exception as e:
        logger.error("Error syncing from sync to local: %s", e)
        return False
    return True


def local_to_sync(local: StorageAreaProtocol, sync: StorageAreaProtocol) -> bool:
    """
    Copy local into the sync area, then clean up stale sync keys.

    A merge-based sync write cannot delete keys, so orphaned chunks and
    zombies are swept afterwards. Cleanup is best-effort; the write stands
    even if it fails.

    Returns:
        True if the write succeeded
    """
    try:
        sync.set(local.get(None))
    except Exception as e:
        logger.error("Error syncing to sync storage: %s", e)
        return False

    cleanup_storage(sync)
    return True


class SyncScheduler:
    """
    Debounced local -> sync pusher.

    Owns its timer and the time of the last push. Attach it to both areas
    with :meth:`attach`, or feed :meth:`on_changed` from any change source.
    """

    def __init__(
        self,
        local: StorageAreaProtocol,
        sync: StorageAreaProtocol,
        *,
        period: float = DEFAULT_SYNC_PERIOD,
        clock: Callable[[], float] = time.monotonic,
        request_update_check: Optional[Callable[[], Any]] = None,
    ):
        self._local = local
        self._sync = sync
        self._period = period
        self._clock = clock
        self._request_update_check = request_update_check
        self._timer: Optional[threading.Timer] = None
        self._last_push: Optional[float] = None
        self._lock = threading.Lock()
        self._attached = False
        # Threads currently pushing or pulling; their notifications are echoes
        self._writers: set[int] = set()

    @property
    def pending(self) -> bool:
        """True while a debounced push is waiting."""
        return self._timer is not None

    def attach(self) -> None:
        """Listen for changes on both areas (they must support listeners)."""
        if self._attached:
            return
        self._local.add_listener(self.on_changed)
        self._sync.add_listener(self.on_changed)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._local.remove_listener(self.on_changed)
        self._sync.remove_listener(self.on_changed)
        self._attached = False

    def on_changed(self, changes: dict[str, dict[str, Any]], area: str) -> None:
        """Route a change notification from either area."""
        with self._lock:
            if threading.get_ident() in self._writers:
                return
        if area == self._local.area:
            self._schedule_push()
        else:
            self.pull()

    def _schedule_push(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last_push is None or now - self._last_push > self._period:
                push_now = True
            else:
                push_now = False
                self._cancel_timer()
                delay = self._period - (now - self._last_push)
                self._timer = threading.Timer(delay, self.push)
                self._timer.daemon = True
                self._timer.start()

        if push_now:
            self.push()

    @contextmanager
    def _writing(self):
        ident = threading.get_ident()
        with self._lock:
            self._writers.add(ident)
        try:
            yield
        finally:
            with self._lock:
                self._writers.discard(ident)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def push(self) -> bool:
        """Push local to sync now, cancelling any pending timer."""
        with self._lock:
            self._last_push = self._clock()
            self._cancel_timer()

        with self._writing():
            return local_to_sync(self._local, self._sync)

    def pull(self) -> bool:
        """Migrate sync and copy it into local."""
        with self._writing():
            return sync_to_local(
                self._local, self._sync,
                request_update_check=self._request_update_check,
            )

    def close(self) -> None:
        """Cancel any pending push and stop listening."""
        with self._lock:
            self._cancel_timer()
        self.detach()
