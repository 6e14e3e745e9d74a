from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import re
import time

import httpx

from .models import DailyHole


logger = logging.getLogger("golf-bot.daily")

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_FETCH_TIMEOUT = 10.0

# "No." may be followed by tags before the number, e.g. "No.</span>\n<b>315".
HOLE_RE = re.compile(r"No\.\s*(?:<[^>]*>\s*)*(\d+)", re.IGNORECASE)
DATE_RE = re.compile(
    r"(January|February|March|April|May|June|July|August|September|October|November|December)"
    r"\s+(\d{1,2}),?\s*(\d{4})",
    re.IGNORECASE,
)


def parse_hole_number(html: str) -> int | None:
    match = HOLE_RE.search(html)
    if match is None:
        return None
    return int(match.group(1))


def parse_display_date(html: str) -> str | None:
    match = DATE_RE.search(html)
    if match is None:
        return None
    month, day, year = match.groups()
    return f"{month.title()} {int(day)}, {year}"


class DailyHoleCache:
    def __init__(
        self,
        url: str,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._current = DailyHole(hole_number=None, display_date=None, fetched_at=0.0)
        self._refresh_lock = asyncio.Lock()

    def is_fresh(self) -> bool:
        if self._current.hole_number is None:
            return False
        return self._clock() - self._current.fetched_at < self.ttl_seconds

    async def get_daily(self) -> DailyHole:
        if self.is_fresh():
            return self._current
        async with self._refresh_lock:
            # Another task may have refreshed while this one waited.
            if self.is_fresh():
                return self._current
            await self._refresh()
        return self._current

    async def _fetch_page(self) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.text

    async def _refresh(self) -> None:
        try:
            html = await self._fetch_page()
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch daily hole from %s: %s", self.url, exc)
            return

        hole_number = parse_hole_number(html)
        if hole_number is None:
            logger.warning("Daily hole number not found on %s; keeping cached value", self.url)
            return

        self._current = DailyHole(
            hole_number=hole_number,
            display_date=parse_display_date(html),
            fetched_at=self._clock(),
        )
        logger.info("Daily hole refreshed: No. %s (%s)", hole_number, self._current.display_date or "no date")
