"""
In-memory span registry and record sink

Used when no Redis server is configured and as the default test double.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from .core_import_models import MinuteRecord, Span
from .port_import_stores import RecordSinkPort, SpanRegistryPort

logger = logging.getLogger(__name__)


class InMemorySpanRegistry(SpanRegistryPort):
    """Span list kept in process memory"""

    def __init__(self, spans: Optional[List[Span]] = None):
        self.spans: List[Span] = list(spans or [])

    async def list_spans(self) -> List[Span]:
        return list(self.spans)

    async def append_span(self, span: Span) -> None:
        self.spans.append(span)

    async def remove_span(self, span: Span) -> None:
        try:
            self.spans.remove(span)
        except ValueError:
            logger.warning(f"Span {span.to_dict()} not found for removal")


class InMemoryRecordSink(RecordSinkPort):
    """Records keyed by (open_time, ticker), one entry per exchange"""

    def __init__(self):
        self.records: Dict[Tuple[int, str], Dict[str, Dict[str, Any]]] = {}

    async def put_record(self, record: MinuteRecord, ticker: str, exchange: str) -> None:
        key = (record.open_time, ticker)
        self.records.setdefault(key, {})[exchange] = record.to_dict()

    def get_record(self, open_time: int, ticker: str, exchange: str) -> Optional[Dict[str, Any]]:
        return self.records.get((open_time, ticker), {}).get(exchange)
