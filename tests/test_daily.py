from __future__ import annotations

import asyncio
import unittest

import httpx

from golfbot.daily import DailyHoleCache, parse_display_date, parse_hole_number

GAME_URL = "https://kindahardgolf.example"

DAILY_PAGE = """
<html><body>
  <div class="daily"><span>No.</span>
    <strong>315</strong></div>
  <p class="date">February 14, 2026</p>
</body></html>
"""


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class ParseTests(unittest.TestCase):
    def test_hole_number_with_intervening_markup(self) -> None:
        self.assertEqual(parse_hole_number(DAILY_PAGE), 315)

    def test_hole_number_plain_text(self) -> None:
        self.assertEqual(parse_hole_number("Hole no. 42 today"), 42)

    def test_hole_number_missing(self) -> None:
        self.assertIsNone(parse_hole_number("<p>Closed for maintenance</p>"))

    def test_display_date(self) -> None:
        self.assertEqual(parse_display_date(DAILY_PAGE), "February 14, 2026")

    def test_display_date_split_over_lines(self) -> None:
        self.assertEqual(parse_display_date("march 3\n  2025"), "March 3, 2025")

    def test_display_date_missing(self) -> None:
        self.assertIsNone(parse_display_date("No. 12"))


class DailyHoleCacheTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.calls = 0
        self.pages: list[object] = []

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        page = self.pages.pop(0) if self.pages else DAILY_PAGE
        if isinstance(page, Exception):
            raise page
        if isinstance(page, int):
            return httpx.Response(page, text="error")
        return httpx.Response(200, text=page)

    def _cache(self, handler=None) -> DailyHoleCache:
        return DailyHoleCache(
            GAME_URL,
            ttl_seconds=1800,
            timeout=5,
            transport=httpx.MockTransport(handler or self._handler),
            clock=self.clock,
        )

    async def test_fetches_and_parses_page(self) -> None:
        daily = await self._cache().get_daily()
        self.assertEqual(daily.hole_number, 315)
        self.assertEqual(daily.display_date, "February 14, 2026")
        self.assertEqual(self.calls, 1)

    async def test_second_call_within_window_uses_cache(self) -> None:
        cache = self._cache()
        first = await cache.get_daily()
        self.clock.now += 29 * 60
        second = await cache.get_daily()
        self.assertEqual(self.calls, 1)
        self.assertEqual(first, second)

    async def test_refreshes_after_window(self) -> None:
        cache = self._cache()
        await cache.get_daily()
        self.pages.append(DAILY_PAGE.replace("315", "316"))
        self.clock.now += 30 * 60
        daily = await cache.get_daily()
        self.assertEqual(self.calls, 2)
        self.assertEqual(daily.hole_number, 316)

    async def test_network_failure_without_history_returns_absent(self) -> None:
        self.pages.append(httpx.ConnectTimeout("timed out"))
        daily = await self._cache().get_daily()
        self.assertIsNone(daily.hole_number)
        self.assertIsNone(daily.display_date)

    async def test_failure_keeps_stale_value(self) -> None:
        cache = self._cache()
        first = await cache.get_daily()
        self.clock.now += 31 * 60
        self.pages.append(503)
        stale = await cache.get_daily()
        self.assertEqual(self.calls, 2)
        self.assertEqual(stale, first)

    async def test_parse_failure_keeps_stale_value(self) -> None:
        cache = self._cache()
        first = await cache.get_daily()
        self.clock.now += 31 * 60
        self.pages.append("<html>redesigned page</html>")
        stale = await cache.get_daily()
        self.assertEqual(stale, first)

    async def test_stale_value_is_retried_on_next_call(self) -> None:
        cache = self._cache()
        await cache.get_daily()
        self.clock.now += 31 * 60
        self.pages.append(httpx.ReadTimeout("slow"))
        await cache.get_daily()
        await cache.get_daily()
        self.assertEqual(self.calls, 3)

    async def test_missing_date_still_caches_hole(self) -> None:
        self.pages.append("<b>No. 77</b>")
        daily = await self._cache().get_daily()
        self.assertEqual(daily.hole_number, 77)
        self.assertIsNone(daily.display_date)

    async def test_concurrent_callers_share_one_fetch(self) -> None:
        async def slow_handler(request: httpx.Request) -> httpx.Response:
            self.calls += 1
            await asyncio.sleep(0.01)
            return httpx.Response(200, text=DAILY_PAGE)

        cache = self._cache(slow_handler)
        results = await asyncio.gather(*(cache.get_daily() for _ in range(5)))
        self.assertEqual(self.calls, 1)
        self.assertTrue(all(result.hole_number == 315 for result in results))


if __name__ == "__main__":
    unittest.main()
