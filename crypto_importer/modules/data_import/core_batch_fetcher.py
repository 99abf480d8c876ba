"""
Core logic for rate-limited batch fetching

This module handles:
- Splitting a time range into exchange-sized windows
- Staggering window requests to respect the exchange rate limit
- Fetch-phase progress reporting
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
import logging

from .core_import_models import MINUTE_MS, FetchFailure, MinuteRecord
from .port_import_stores import ExchangeFetchPort

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Share of total import progress taken by the fetch phase
FETCH_PHASE_SHARE = 0.5


@dataclass(frozen=True)
class FetchWindow:
    """Represents a single bounded exchange request"""
    index: int
    start: int
    end: int

    def to_dict(self) -> Dict:
        return {
            'index': self.index,
            'start': self.start,
            'end': self.end,
        }


class BatchFetcher:
    """
    Fans a time range out into delayed, concurrent window fetches
    """

    INTERVAL = '1m'

    # Maximum candles per request (exchange limit)
    MAX_CANDLES_PER_REQUEST = 1000

    def __init__(
        self,
        exchange: ExchangeFetchPort,
        window_size_minutes: int = MAX_CANDLES_PER_REQUEST,
        request_delay: float = 0.06
    ):
        if not 0 < window_size_minutes <= self.MAX_CANDLES_PER_REQUEST:
            raise ValueError(
                f"window_size_minutes must be between 1 and {self.MAX_CANDLES_PER_REQUEST}, "
                f"got {window_size_minutes}"
            )
        self.exchange = exchange
        self.window_size_minutes = window_size_minutes
        self.request_delay = request_delay

    @property
    def window_ms(self) -> int:
        return self.window_size_minutes * MINUTE_MS

    def plan_windows(self, start: int, end: int) -> List[FetchWindow]:
        """
        Calculate consecutive windows covering [start, end]

        Args:
            start: Range start in epoch milliseconds
            end: Range end in epoch milliseconds

        Returns:
            Windows of window_size_minutes each, the last one truncated at end
        """
        windows = []

        current_start = start
        while current_start < end:
            current_end = min(current_start + self.window_ms, end)
            windows.append(FetchWindow(len(windows), current_start, current_end))
            current_start = current_end

        return windows

    def delay_for(self, window: FetchWindow) -> float:
        """Seconds to wait before issuing a window's request"""
        return window.index * self.request_delay

    async def fetch(
        self,
        ticker: str,
        start: int,
        end: int,
        on_progress: Optional[ProgressCallback] = None
    ) -> Tuple[List[MinuteRecord], int]:
        """
        Fetch every window of a range

        All windows are scheduled at once, window i sleeping i * request_delay
        first. A failing window does not cancel its siblings; once all have
        settled the first failure is raised as FetchFailure.

        Args:
            ticker: Trading symbol
            start: Range start in epoch milliseconds
            end: Range end in epoch milliseconds
            on_progress: Called with the overall progress after each window

        Returns:
            Records in completion order (not chronological) and the number
            of windows issued
        """
        windows = self.plan_windows(start, end)
        total = len(windows)
        records: List[MinuteRecord] = []
        completed = 0

        logger.info(
            f"Fetching {ticker} from {start} to {end} in {total} windows "
            f"of {self.window_size_minutes} minutes"
        )

        async def run_window(window: FetchWindow) -> None:
            nonlocal completed

            delay = self.delay_for(window)
            if delay > 0:
                await asyncio.sleep(delay)

            batch = await self.exchange.fetch_window(
                ticker,
                self.INTERVAL,
                window.start,
                window.end,
                self.window_size_minutes
            )
            records.extend(batch)
            completed += 1

            logger.debug(
                f"Window {window.index + 1}/{total} for {ticker} returned {len(batch)} klines"
            )

            if on_progress is not None:
                on_progress(completed / total * FETCH_PHASE_SHARE)

        results = await asyncio.gather(
            *(run_window(window) for window in windows),
            return_exceptions=True
        )

        failures = [
            (window, result)
            for window, result in zip(windows, results)
            if isinstance(result, Exception)
        ]
        if failures:
            for window, error in failures:
                logger.error(f"Window {window.to_dict()} for {ticker} failed: {error}")
            first_window, first_error = failures[0]
            raise FetchFailure(
                failed_windows=len(failures),
                total_windows=total,
                message=(
                    f"{len(failures)}/{total} windows failed for {ticker}, "
                    f"first at {first_window.start}: {first_error}"
                )
            ) from first_error

        return records, total
