"""Stroke counts: hanzi-writer-data first, then offline table, then estimate."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from .config import STROKE_DATA_URL, STROKE_TIMEOUT_SECONDS
from .content_config import DEFAULT_LIBRARY, ContentLibrary

logger = logging.getLogger(__name__)

CJK_START = 0x4E00
CJK_END = 0x9FFF


def estimate_strokes(char: str) -> int:
    """Deterministic guess from the code point, always within [3, 30]."""
    code = ord(char[0]) if char else 0
    base = 10
    if CJK_START <= code <= CJK_END:
        base = 8 + (code % 20) % 12
    return max(3, min(30, base))


class StrokeLookup:
    def __init__(
        self,
        library: ContentLibrary = DEFAULT_LIBRARY,
        base_url: str = STROKE_DATA_URL,
        timeout: float = STROKE_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.table = library.strokes
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
        self._cache: dict[str, int] = {}

    async def _fetch(self, session: aiohttp.ClientSession, char: str) -> int | None:
        async with session.get(f"{self.base_url}/{char}.json", timeout=self.timeout) as resp:
            if resp.status != 200:
                return None
            data = await resp.json(content_type=None)
        strokes = data.get("strokes") if isinstance(data, dict) else None
        if isinstance(strokes, list) and strokes:
            return len(strokes)
        return None

    async def _fetch_remote(self, char: str) -> int | None:
        try:
            if self.session is not None:
                return await self._fetch(self.session, char)
            async with aiohttp.ClientSession() as session:
                return await self._fetch(session, char)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Failed to fetch stroke data for %s, using fallback: %s", char, e)
            return None

    async def get_stroke_count(self, char: str) -> int:
        """Never raises; returns a best-effort count >= 1."""
        if char in self._cache:
            return self._cache[char]

        count = await self._fetch_remote(char)
        if count is None:
            # not cached, the service may be back next time
            return self.table.get(char) or estimate_strokes(char)
        self._cache[char] = count
        return count

    async def get_total_strokes(self, word: str) -> int:
        total = 0
        for char in word:
            total += await self.get_stroke_count(char)
        return total
