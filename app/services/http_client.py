"""
Shared HTTP helpers with timeouts for external carrier APIs.
Single attempt only: a failed page is reported to the caller, never retried here.
"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


async def get_once(
    url: str,
    *,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Response:
    """
    GET with a bounded timeout. Uses the given client when provided (connection reuse
    across pages, injectable in tests), otherwise a short-lived one.
    Transport errors and timeouts propagate as httpx.TransportError.
    """
    if client is not None:
        return await client.get(url, params=params, headers=headers or {}, timeout=timeout)
    async with httpx.AsyncClient(timeout=timeout) as short_lived:
        return await short_lived.get(url, params=params, headers=headers or {})


def log_response(provider: str, method: str, url: str, status: int, body_preview: str = "") -> None:
    """Log every carrier call. No credentials."""
    if status >= 400:
        logger.warning("%s API %s %s -> %s %s", provider, method, url, status, body_preview[:200] if body_preview else "")
    else:
        logger.info("%s API %s %s -> %s", provider, method, url, status)
