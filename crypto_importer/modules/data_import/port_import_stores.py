"""
Port definitions for import collaborators
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .core_import_models import MinuteRecord, Span


class ExchangeFetchPort(ABC):
    """Port for pulling one bounded window of klines from an exchange"""

    @abstractmethod
    async def fetch_window(
        self,
        ticker: str,
        interval: str,
        start_time: int,
        end_time: int,
        limit: int
    ) -> List[MinuteRecord]:
        """Fetch klines with open time in [start_time, end_time], at most limit of them"""
        pass

    async def close(self) -> None:
        """Release connections held by the client"""
        pass


class SpanRegistryPort(ABC):
    """Port for the collection of imported spans"""

    @abstractmethod
    async def list_spans(self) -> List[Span]:
        """List every known span, in no particular order"""
        pass

    @abstractmethod
    async def append_span(self, span: Span) -> None:
        """Record a new span"""
        pass

    @abstractmethod
    async def remove_span(self, span: Span) -> None:
        """Remove a span equal by value to the given one"""
        pass

    async def replace_span(self, old: Optional[Span], new: Span) -> None:
        """
        Swap a superseded span for its merged replacement.

        The default runs remove then append; backends that can do both
        atomically override it.
        """
        if old is not None:
            await self.remove_span(old)
        await self.append_span(new)


class RecordSinkPort(ABC):
    """Port for persisting per-minute records"""

    @abstractmethod
    async def put_record(self, record: MinuteRecord, ticker: str, exchange: str) -> None:
        """Store a record under (open_time, ticker) with the exchange as sub-field"""
        pass
