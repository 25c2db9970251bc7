"""
Error log for the flfaves CLI.

Unexpected failures get a full traceback in {store}/flfaves-errors.log;
the user only sees a one-line message.
"""

import os
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import get_default_store_path

ERROR_LOG_FILENAME = "flfaves-errors.log"


def error_log_path(store_path: Optional[Path] = None) -> Path:
    """Error log location: the given store, else the default store."""
    return Path(store_path or get_default_store_path()) / ERROR_LOG_FILENAME


def log_exception(
    exc: BaseException,
    context: str = "",
    store_path: Optional[Path] = None,
) -> Path:
    """
    Append a traceback for ``exc`` to the error log.

    Args:
        exc: The exception that occurred
        context: Short label for the failing operation
        store_path: Store directory holding the log

    Returns:
        Path to the error log (returned even if it could not be written)
    """
    log_path = error_log_path(store_path)
    header = f"[{datetime.now(timezone.utc).isoformat()}] {context}".rstrip()
    entry = "\n".join([
        "=" * 60,
        header,
        "argv: " + " ".join(sys.argv[1:]),
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(),
    ])
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(entry + "\n")
    except OSError:
        pass  # unwritable store directory
    return log_path
