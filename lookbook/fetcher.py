"""Async HTTP fetching with aiohttp.

One ``HttpFetcher`` (and one underlying ``ClientSession``) is shared by all
workers of a batch run.  Every failure mode (non-2xx status, timeout,
connection error, undecodable body) is reported as ``FetchError`` so callers
can treat it as "this source did not work" and move on.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IMAGE_USER_AGENT = "Mozilla/5.0"


class FetchError(Exception):
    """A request did not produce a usable 2xx response."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class HttpFetcher:
    """Shared aiohttp session with per-request timeouts.

    Use as an async context manager::

        async with HttpFetcher() as fetcher:
            data = await fetcher.fetch(url, timeout=15)
    """

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> HttpFetcher:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                headers={"User-Agent": IMAGE_USER_AGENT},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def _get(self, url: str, timeout: float, headers: dict | None,
                   as_text: bool) -> bytes | str:
        if self.session is None:
            raise RuntimeError("HttpFetcher used outside of 'async with'")
        try:
            async with self.session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=True,
            ) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(url, f"HTTP {response.status}")
                if as_text:
                    return await response.text(errors="replace")
                return await response.read()
        except asyncio.TimeoutError as exc:
            raise FetchError(url, f"timed out after {timeout:g}s") from exc
        except aiohttp.ClientError as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc
        except (UnicodeDecodeError, LookupError) as exc:
            raise FetchError(url, f"undecodable body: {exc}") from exc

    async def fetch(self, url: str, timeout: float, headers: dict | None = None) -> bytes:
        """GET *url* and return the body bytes."""
        data = await self._get(url, timeout, headers, as_text=False)
        logger.debug("Fetched %s (%d bytes)", url, len(data))
        return data

    async def fetch_text(self, url: str, timeout: float, headers: dict | None = None) -> str:
        """GET *url* and return the decoded body text."""
        return await self._get(url, timeout, headers, as_text=True)
