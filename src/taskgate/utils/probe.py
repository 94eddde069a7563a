"""Liveness probes for external endpoints (browser automation, local service)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


def probe_url(url: str, timeout: float = 2.0) -> tuple[bool, str]:
    """Return (reachable, detail). Any HTTP response counts as listening."""
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=False)
    except httpx.ConnectError as e:
        logger.debug("probe %s: connect error %s", url, e)
        return False, f"connection refused ({url})"
    except httpx.TimeoutException:
        logger.debug("probe %s: timeout", url)
        return False, f"no response within {timeout:g}s ({url})"
    except httpx.HTTPError as e:
        logger.debug("probe %s: %s", url, e)
        return False, f"{type(e).__name__}: {e}"
    return True, f"HTTP {response.status_code} from {url}"
