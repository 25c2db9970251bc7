"""
Logging setup for flfaves.

Library code only calls ``logging.getLogger(__name__)``; handlers are
attached here, by the CLI. Console output is warnings-only unless
FLFAVES_VERBOSE=1 or --verbose; the per-store ops log always records INFO.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "flfaves"
OPS_LOG_FILENAME = "flfaves-ops.log"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_ops_handler: Optional[RotatingFileHandler] = None


def _console_handler() -> logging.Handler:
    """The root stderr handler, created on first use."""
    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            return h
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(handler)
    return handler


def configure_quiet_mode(quiet: bool = True):
    """
    Limit console output to warnings and errors.

    Args:
        quiet: False restores INFO output from flfaves.
    """
    level = logging.WARNING if quiet else logging.INFO
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        for noisy in ("httpx", "httpcore"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
    _console_handler().setLevel(level)


def enable_debug_mode():
    """Everything from flfaves and httpx at DEBUG, with timestamps, to stderr."""
    warnings.filterwarnings("default")
    handler = _console_handler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DEBUG_FORMAT, datefmt="%H:%M:%S"))
    logging.getLogger().setLevel(logging.DEBUG)
    for name in (PACKAGE_LOGGER, "httpx"):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Record INFO and above from flfaves in {store_path}/flfaves-ops.log.

    Rotates at 1MB, keeping 3 backups. Calling it again (e.g. for another
    store) replaces the previous handler.
    """
    global _ops_handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _ops_handler is not None:
        logger.removeHandler(_ops_handler)
        _ops_handler.close()

    log_path = Path(store_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
    # INFO must reach the file even while the console is quiet
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)

    _ops_handler = handler
    return handler
