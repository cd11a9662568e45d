"""
Content fetcher: one GET per source with browser-like headers.

No retries: a failed fetch is reported once and the source is marked failed
for this pass. Every failure surfaces as `FetchError` with a short message.
"""

import logging
from typing import Optional

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
ACCEPT = "application/rss+xml, application/xml, text/xml, text/html;q=0.9, */*;q=0.8"

MAX_ERROR_CHARS = 200


class FetchError(Exception):
    """A source could not be fetched."""

    def __init__(self, message: str):
        super().__init__(message[:MAX_ERROR_CHARS])


async def fetch_text(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> str:
    """Fetch `url` and return the response body as text.

    Args:
        url: Absolute URL.
        client: Shared client; a short-lived one is opened when omitted.
        timeout: Seconds; defaults to FETCH_TIMEOUT_SECONDS.

    Raises:
        FetchError: on non-2xx status, timeout, or transport failure.
    """
    if timeout is None:
        timeout = get_settings().fetch_timeout_seconds
    headers = {"User-Agent": USER_AGENT, "Accept": ACCEPT}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(url, headers=headers, follow_redirects=True)
        else:
            response = await client.get(url, headers=headers, follow_redirects=True, timeout=timeout)
    except httpx.TimeoutException:
        raise FetchError(f"Timed out after {timeout:g}s: {url}")
    except httpx.HTTPError as e:
        raise FetchError(str(e) or type(e).__name__)

    if not response.is_success:
        raise FetchError(f"HTTP {response.status_code} {response.reason_phrase}".strip())

    logger.debug(f"[FETCH] {url}: {len(response.text)} chars")
    return response.text
