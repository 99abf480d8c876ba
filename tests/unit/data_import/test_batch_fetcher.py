"""
Unit tests for the rate-limited batch fetcher

Uses a fake exchange client, no network access.
"""
import asyncio
import math
import time
import pytest
from typing import List, Set, Tuple

from crypto_importer.modules.data_import.core_batch_fetcher import BatchFetcher
from crypto_importer.modules.data_import.core_import_models import (
    MINUTE_MS,
    FetchFailure,
    MinuteRecord,
)
from crypto_importer.modules.data_import.port_import_stores import ExchangeFetchPort


def make_record(open_time: int) -> MinuteRecord:
    return MinuteRecord(
        open_time=open_time,
        open="100.0",
        high="101.0",
        low="99.0",
        close="100.5",
        volume="12.5",
        close_time=open_time + MINUTE_MS - 1
    )


class FakeExchangeClient(ExchangeFetchPort):
    """Fake exchange returning one record per minute of each window"""

    def __init__(self, fail_starts: Set[int] = frozenset(), latency: float = 0.0):
        self.fail_starts = set(fail_starts)
        self.latency = latency
        self.calls: List[Tuple[str, str, int, int, int]] = []
        self.settled: List[int] = []
        self.call_times: List[float] = []

    async def fetch_window(self, ticker, interval, start_time, end_time, limit):
        self.calls.append((ticker, interval, start_time, end_time, limit))
        self.call_times.append(time.monotonic())
        if self.latency:
            await asyncio.sleep(self.latency)
        self.settled.append(start_time)
        if start_time in self.fail_starts:
            raise ConnectionError(f"exchange unavailable for window {start_time}")
        return [make_record(t) for t in range(start_time, end_time, MINUTE_MS)]


class PagedExchangeClient(ExchangeFetchPort):
    """Fake exchange returning at most `limit` klines from start_time, end_time inclusive"""

    async def fetch_window(self, ticker, interval, start_time, end_time, limit):
        open_times = range(start_time, end_time + 1, MINUTE_MS)
        return [make_record(t) for t in open_times[:limit]]


class TestPlanWindows:
    """Test suite for window planning"""

    def test_exact_multiple_gives_n_windows(self):
        fetcher = BatchFetcher(FakeExchangeClient(), window_size_minutes=1000)
        window_ms = 1000 * MINUTE_MS

        windows = fetcher.plan_windows(0, 3 * window_ms)

        assert len(windows) == 3
        assert [(w.start, w.end) for w in windows] == [
            (0, window_ms),
            (window_ms, 2 * window_ms),
            (2 * window_ms, 3 * window_ms),
        ]

    def test_last_window_is_truncated(self):
        fetcher = BatchFetcher(FakeExchangeClient(), window_size_minutes=10)

        windows = fetcher.plan_windows(0, 25 * MINUTE_MS)

        assert len(windows) == 3
        assert windows[-1].start == 20 * MINUTE_MS
        assert windows[-1].end == 25 * MINUTE_MS

    def test_short_range_gives_one_window(self):
        fetcher = BatchFetcher(FakeExchangeClient(), window_size_minutes=1000)

        windows = fetcher.plan_windows(0, 120000)

        assert len(windows) == 1
        assert len(windows) == math.ceil((120000 / MINUTE_MS) / 1000)

    def test_empty_range_gives_no_windows(self):
        fetcher = BatchFetcher(FakeExchangeClient())

        assert fetcher.plan_windows(500, 500) == []

    def test_window_indexes_drive_delays(self):
        fetcher = BatchFetcher(FakeExchangeClient(), window_size_minutes=1, request_delay=0.5)

        windows = fetcher.plan_windows(0, 4 * MINUTE_MS)

        assert [fetcher.delay_for(w) for w in windows] == [0.0, 0.5, 1.0, 1.5]

    def test_full_page_window_is_allowed(self):
        fetcher = BatchFetcher(FakeExchangeClient(), window_size_minutes=BatchFetcher.MAX_CANDLES_PER_REQUEST)

        assert fetcher.window_ms == 1000 * MINUTE_MS

    @pytest.mark.parametrize("window_minutes", [1001, 1440])
    def test_rejects_windows_larger_than_one_page(self, window_minutes):
        with pytest.raises(ValueError):
            BatchFetcher(FakeExchangeClient(), window_size_minutes=window_minutes)

    def test_rejects_non_positive_window_size(self):
        with pytest.raises(ValueError):
            BatchFetcher(FakeExchangeClient(), window_size_minutes=0)


class TestBatchFetch:
    """Test suite for BatchFetcher.fetch"""

    @pytest.mark.asyncio
    async def test_fetch_issues_one_request_per_window(self):
        exchange = FakeExchangeClient()
        fetcher = BatchFetcher(exchange, window_size_minutes=10, request_delay=0)

        records, windows = await fetcher.fetch("BTCUSD", 0, 30 * MINUTE_MS)

        assert windows == 3
        assert len(exchange.calls) == 3
        assert all(call[1] == "1m" and call[4] == 10 for call in exchange.calls)
        assert sorted(r.open_time for r in records) == list(range(0, 30 * MINUTE_MS, MINUTE_MS))

    @pytest.mark.asyncio
    async def test_progress_reports_half_of_total(self):
        exchange = FakeExchangeClient()
        fetcher = BatchFetcher(exchange, window_size_minutes=10, request_delay=0.01)
        reported: List[float] = []

        await fetcher.fetch("BTCUSD", 0, 40 * MINUTE_MS, on_progress=reported.append)

        assert reported == pytest.approx([k / 4 * 0.5 for k in range(1, 5)])

    @pytest.mark.asyncio
    async def test_windows_are_staggered(self):
        exchange = FakeExchangeClient()
        fetcher = BatchFetcher(exchange, window_size_minutes=1, request_delay=0.05)

        await fetcher.fetch("BTCUSD", 0, 3 * MINUTE_MS)

        first = exchange.call_times[0]
        assert exchange.call_times[1] - first >= 0.04
        assert exchange.call_times[2] - first >= 0.09

    @pytest.mark.asyncio
    async def test_failure_raised_only_after_all_windows_settle(self):
        # first window fails at once, the others are still sleeping
        exchange = FakeExchangeClient(fail_starts={0})
        fetcher = BatchFetcher(exchange, window_size_minutes=1, request_delay=0.02)

        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch("BTCUSD", 0, 4 * MINUTE_MS)

        assert sorted(exchange.settled) == [0, MINUTE_MS, 2 * MINUTE_MS, 3 * MINUTE_MS]
        assert exc_info.value.failed_windows == 1
        assert exc_info.value.total_windows == 4
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(self):
        exchange = FakeExchangeClient(fail_starts={MINUTE_MS, 3 * MINUTE_MS})
        fetcher = BatchFetcher(exchange, window_size_minutes=1, request_delay=0)
        reported: List[float] = []

        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch("BTCUSD", 0, 4 * MINUTE_MS, on_progress=reported.append)

        assert exc_info.value.failed_windows == 2
        assert len(exchange.calls) == 4
        # successful siblings still reported progress
        assert len(reported) == 2

    @pytest.mark.asyncio
    async def test_first_failure_in_window_order_is_the_cause(self):
        exchange = FakeExchangeClient(fail_starts={MINUTE_MS, 2 * MINUTE_MS})
        fetcher = BatchFetcher(exchange, window_size_minutes=1, request_delay=0)

        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch("BTCUSD", 0, 3 * MINUTE_MS)

        assert str(MINUTE_MS) in str(exc_info.value.__cause__)

    @pytest.mark.asyncio
    async def test_full_page_windows_cover_every_minute(self):
        fetcher = BatchFetcher(PagedExchangeClient(), window_size_minutes=1000, request_delay=0)

        records, windows = await fetcher.fetch("BTCUSD", 0, 2880 * MINUTE_MS)

        assert windows == 3
        open_times = {r.open_time for r in records}
        assert open_times >= set(range(0, 2880 * MINUTE_MS, MINUTE_MS))
