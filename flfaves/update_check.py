"""
Best-effort update check.

Triggered when a store carries a schema newer than this release
understands (usually synced from another device running a newer
version). The check only asks the release endpoint for the latest
version and logs it; it never raises.
"""

import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


def check_for_update(
    url: str,
    current_version: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.BaseTransport] = None,
) -> Optional[str]:
    """
    Fetch the latest published version from ``url``.

    Accepts either a JSON body with a ``version`` field (``info.version``
    for PyPI-style responses) or a plain-text version string.

    Returns:
        Latest version string, or None if the check failed
    """
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            resp = client.get(url)
            resp.raise_for_status()
            if "json" in resp.headers.get("content-type", ""):
                body = resp.json()
                latest = body.get("version") or body.get("info", {}).get("version")
            else:
                latest = resp.text.strip()
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning("Update check failed: %s", e)
        return None

    if not latest:
        logger.warning("Update check returned no version")
        return None

    if str(latest) != current_version:
        logger.warning("Update available: %s (installed %s)", latest, current_version)
    else:
        logger.info("No update available (installed %s)", current_version)
    return str(latest)


def make_update_checker(
    url: Optional[str],
    current_version: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.BaseTransport] = None,
) -> Optional[Callable[[], Optional[str]]]:
    """Bind an update check to a URL; None if no URL is configured."""
    if not url:
        return None

    def request_update_check() -> Optional[str]:
        return check_for_update(url, current_version, timeout=timeout, transport=transport)

    return request_update_check
