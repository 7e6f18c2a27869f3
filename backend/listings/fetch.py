from __future__ import annotations

import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


async def fetch_text(source: str, *, timeout: float = DEFAULT_TIMEOUT_S) -> str:
    """
    Fetch a text resource from an http(s) URL or a local file path.

    Errors propagate (httpx.HTTPError, OSError); callers decide whether they are fatal.
    """
    if is_url(source):
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(source)
            resp.raise_for_status()
            logger.debug("Fetched %s (%d bytes)", source, len(resp.content))
            return resp.text

    text = Path(source).read_text(encoding="utf-8")
    logger.debug("Read %s (%d chars)", source, len(text))
    return text
