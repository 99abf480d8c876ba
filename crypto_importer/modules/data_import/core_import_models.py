"""
Core data model for time-range imports

This module holds:
- Import requests and imported spans
- Per-minute kline records
- The process-wide import state
- Domain errors raised by the import pipeline
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, replace
import logging

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class ImportRequest:
    """One requested import of a ticker's history on an exchange"""
    ticker: str
    exchange: str
    start_time: int
    end_time: int

    def validate(self) -> None:
        if self.start_time >= self.end_time:
            raise InvalidRange(
                f"startTime {self.start_time} must be before endTime {self.end_time}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticker': self.ticker,
            'exchange': self.exchange,
            'startTime': self.start_time,
            'endTime': self.end_time,
        }


@dataclass(frozen=True)
class Span:
    """A contiguous range of already imported data for a ticker+exchange pair"""
    ticker: str
    exchange: str
    start_time: int
    end_time: int

    def same_market(self, ticker: str, exchange: str) -> bool:
        return self.ticker == ticker and self.exchange == exchange

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticker': self.ticker,
            'exchange': self.exchange,
            'startTime': self.start_time,
            'endTime': self.end_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Span':
        return cls(
            ticker=data['ticker'],
            exchange=data['exchange'],
            start_time=int(data['startTime']),
            end_time=int(data['endTime']),
        )

    @classmethod
    def from_request(cls, request: ImportRequest) -> 'Span':
        return cls(
            ticker=request.ticker,
            exchange=request.exchange,
            start_time=request.start_time,
            end_time=request.end_time,
        )


@dataclass(frozen=True)
class MinuteRecord:
    """
    One per-minute OHLCV kline.

    Prices and volumes keep the exchange's decimal strings so nothing is lost
    to float rounding on the way to storage.
    """
    open_time: int
    open: str
    high: str
    low: str
    close: str
    volume: str
    close_time: int
    quote_volume: str = "0"
    trades: int = 0
    taker_buy_base_volume: str = "0"
    taker_buy_quote_volume: str = "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'openTime': self.open_time,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
            'closeTime': self.close_time,
            'quoteAssetVolume': self.quote_volume,
            'trades': self.trades,
            'takerBaseAssetVolume': self.taker_buy_base_volume,
            'takerQuoteAssetVolume': self.taker_buy_quote_volume,
        }

    @classmethod
    def from_kline(cls, raw_kline: List) -> 'MinuteRecord':
        """
        Build a record from a REST kline array

        Format: [
            1499040000000,      # Open time
            "0.01634790",       # Open
            "0.80000000",       # High
            "0.01575800",       # Low
            "0.01577100",       # Close
            "148976.11427815",  # Volume
            1499644799999,      # Close time
            "2434.19055334",    # Quote asset volume
            308,                # Number of trades
            "1756.87402397",    # Taker buy base asset volume
            "28.46694368",      # Taker buy quote asset volume
            "0"                 # Ignore
        ]
        """
        return cls(
            open_time=int(raw_kline[0]),
            open=str(raw_kline[1]),
            high=str(raw_kline[2]),
            low=str(raw_kline[3]),
            close=str(raw_kline[4]),
            volume=str(raw_kline[5]),
            close_time=int(raw_kline[6]),
            quote_volume=str(raw_kline[7]),
            trades=int(raw_kline[8]),
            taker_buy_base_volume=str(raw_kline[9]),
            taker_buy_quote_volume=str(raw_kline[10]),
        )


@dataclass(frozen=True)
class ImportPlan:
    """What to fetch for a request and how the span registry changes afterwards"""
    request: ImportRequest
    fetch_start: int
    fetch_end: int
    merged_span: Span
    superseded_span: Optional[Span] = None


@dataclass
class ImportReport:
    """Summary of one completed import"""
    plan: ImportPlan
    windows: int = 0
    records_fetched: int = 0
    records_persisted: int = 0
    persist_failures: int = 0
    span_committed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'request': self.plan.request.to_dict(),
            'fetchStart': self.plan.fetch_start,
            'fetchEnd': self.plan.fetch_end,
            'mergedSpan': self.plan.merged_span.to_dict(),
            'windows': self.windows,
            'recordsFetched': self.records_fetched,
            'recordsPersisted': self.records_persisted,
            'persistFailures': self.persist_failures,
            'spanCommitted': self.span_committed,
        }


@dataclass
class ImportState:
    """
    The single process-wide import state.

    Shared by reference between the coordinator and the API layer. Only the
    coordinator mutates it.
    """
    active: bool = False
    request: Optional[ImportRequest] = None
    progress: float = 0.0

    def try_begin(self, request: ImportRequest) -> bool:
        """Check-and-set the busy latch. Contains no await, so it is atomic on the event loop."""
        if self.active:
            return False
        self.active = True
        self.request = request
        self.progress = 0.0
        return True

    def advance(self, progress: float) -> None:
        # progress never moves backwards, even when window callbacks land out of order
        self.progress = min(1.0, max(self.progress, progress))

    def reset(self) -> None:
        self.active = False
        self.request = None
        self.progress = 0.0

    def snapshot(self) -> 'ImportState':
        return replace(self)


class ImporterError(Exception):
    """Base class for import pipeline errors"""
    pass


class InvalidRange(ImporterError):
    """Raised when a request's start is not before its end"""
    pass


class UnsupportedExchange(ImporterError):
    """Raised when no fetch client is registered for the requested exchange"""
    pass


class BusyConflict(ImporterError):
    """Raised when an import is requested while another one is running"""
    pass


class RangeConflict(ImporterError):
    """Raised when the overlap resolver rejects a request"""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Requested range rejected: {reason}")


class FetchFailure(ImporterError):
    """Raised after all fetch windows settled and at least one failed"""

    def __init__(self, failed_windows: int, total_windows: int, message: str):
        self.failed_windows = failed_windows
        self.total_windows = total_windows
        super().__init__(message)


class PersistFailure(ImporterError):
    """Raised under the strict persist policy when record writes failed"""

    def __init__(self, failed: int, total: int):
        self.failed = failed
        self.total = total
        super().__init__(f"{failed}/{total} record writes failed")


class RegistryFailure(ImporterError):
    """Raised when the span registry cannot be read or written"""
    pass
