"""Downloads image links so they can be re-uploaded as attachments."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = aiohttp.ClientTimeout(total=20, connect=10)
# Discord's default upload limit for unboosted guilds
MAX_IMAGE_BYTES = 25 * 1024 * 1024


class ImageFetcher:
    """Fetches remote images over a shared aiohttp session."""

    def __init__(self, timeout: aiohttp.ClientTimeout = DOWNLOAD_TIMEOUT):
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def fetch(self, url: str) -> Optional[bytes]:
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning("Image download for %s returned HTTP %s", url, response.status)
                    return None
                if response.content_length and response.content_length > MAX_IMAGE_BYTES:
                    logger.warning("Image at %s is too large to re-upload", url)
                    return None
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Failed to download image %s: %s", url, exc)
            return None

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
