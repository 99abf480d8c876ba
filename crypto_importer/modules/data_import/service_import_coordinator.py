"""
Service coordinating one time-range import at a time

This service handles:
- The single-flight busy latch
- Overlap resolution against the span registry
- The fetch phase through the batch fetcher
- The persist phase, record by record
- Committing the merged span
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from enum import Enum

from .core_batch_fetcher import FETCH_PHASE_SHARE, BatchFetcher
from .core_import_models import (
    BusyConflict,
    ImportPlan,
    ImportReport,
    ImportRequest,
    ImportState,
    MinuteRecord,
    PersistFailure,
    RangeConflict,
    RegistryFailure,
    UnsupportedExchange,
)
from .core_overlap_resolver import OverlapResolver, Reject
from .port_import_stores import ExchangeFetchPort, RecordSinkPort, SpanRegistryPort

logger = logging.getLogger(__name__)


class PersistPolicy(str, Enum):
    """How the persist phase treats failed record writes"""
    CONTINUE = "continue"
    STRICT = "strict"


@dataclass
class ImportConfig:
    """Configuration for imports"""
    window_size_minutes: int = 1000
    request_delay: float = 0.06
    persist_policy: PersistPolicy = PersistPolicy.CONTINUE

    def __post_init__(self):
        # one window is one exchange page, larger windows would lose their tail
        if not 0 < self.window_size_minutes <= BatchFetcher.MAX_CANDLES_PER_REQUEST:
            raise ValueError(
                f"window_size_minutes must be between 1 and "
                f"{BatchFetcher.MAX_CANDLES_PER_REQUEST}, got {self.window_size_minutes}"
            )


class ImportCoordinator:
    """
    Runs imports one at a time against the shared ImportState
    """

    def __init__(
        self,
        state: ImportState,
        registry: SpanRegistryPort,
        sink: RecordSinkPort,
        exchanges: Dict[str, ExchangeFetchPort],
        resolver: Optional[OverlapResolver] = None,
        config: Optional[ImportConfig] = None
    ):
        self.state = state
        self.registry = registry
        self.sink = sink
        self.exchanges = exchanges
        self.resolver = resolver or OverlapResolver()
        self.config = config or ImportConfig()

    def fetcher_for(self, exchange: str) -> BatchFetcher:
        client = self.exchanges.get(exchange)
        if client is None:
            raise UnsupportedExchange(
                f"Exchange '{exchange}' is not supported, "
                f"available: {sorted(self.exchanges)}"
            )
        return BatchFetcher(
            client,
            window_size_minutes=self.config.window_size_minutes,
            request_delay=self.config.request_delay
        )

    async def begin_import(self, request: ImportRequest) -> ImportPlan:
        """
        Validate a request, take the busy latch and resolve the fetch plan

        Raises BusyConflict before looking at the request at all, then
        InvalidRange or UnsupportedExchange without touching the state, and
        RangeConflict or RegistryFailure after returning it to idle.
        """
        if self.state.active:
            self._raise_busy()

        request.validate()
        self.fetcher_for(request.exchange)

        if not self.state.try_begin(request):
            self._raise_busy()

        logger.info(f"Import started: {request.to_dict()}")

        try:
            spans = await self.registry.list_spans()
        except RegistryFailure:
            self.state.reset()
            raise
        except Exception as e:
            self.state.reset()
            raise RegistryFailure(f"Could not read spans: {e}") from e

        outcome = self.resolver.resolve(request, spans)
        if isinstance(outcome, Reject):
            self.state.reset()
            logger.warning(
                f"Import {request.to_dict()} rejected ({outcome.reason.value}) "
                f"against span {outcome.span.to_dict()}"
            )
            raise RangeConflict(outcome.reason.value)

        plan = outcome.plan
        if plan.superseded_span is not None:
            logger.info(
                f"Trimmed request to [{plan.fetch_start}, {plan.fetch_end}], "
                f"extending span {plan.superseded_span.to_dict()}"
            )
        return plan

    async def run_import(self, plan: ImportPlan) -> ImportReport:
        """
        Fetch, persist and commit a plan returned by begin_import

        The state goes back to idle whatever happens.
        """
        request = plan.request
        report = ImportReport(plan=plan)

        try:
            fetcher = self.fetcher_for(request.exchange)
            records, report.windows = await fetcher.fetch(
                request.ticker,
                plan.fetch_start,
                plan.fetch_end,
                on_progress=self.state.advance
            )
            report.records_fetched = len(records)

            persisted, failed = await self._persist(records, request)
            report.records_persisted = persisted
            report.persist_failures = failed

            if failed and self.config.persist_policy == PersistPolicy.STRICT:
                raise PersistFailure(failed, persisted + failed)

            report.span_committed = await self._commit(plan)

            logger.info(
                f"Import finished for {request.ticker} on {request.exchange}: "
                f"{persisted} records stored, {failed} failed, "
                f"span {'committed' if report.span_committed else 'NOT committed'}"
            )
            return report

        except Exception as e:
            logger.error(f"Import {request.to_dict()} failed: {e}")
            raise

        finally:
            self.state.reset()

    async def new_import(self, request: ImportRequest) -> ImportReport:
        """Run a whole import cycle and wait for it"""
        plan = await self.begin_import(request)
        return await self.run_import(plan)

    def snapshot(self) -> ImportState:
        return self.state.snapshot()

    def _raise_busy(self) -> None:
        active = self.state.request.to_dict() if self.state.request else None
        raise BusyConflict(f"An import is already running: {active}")

    async def _persist(self, records: List[MinuteRecord], request: ImportRequest) -> Tuple[int, int]:
        # windows share boundary minutes and arrive in completion order
        unique = {record.open_time: record for record in records}
        ordered = [unique[open_time] for open_time in sorted(unique)]
        total = len(ordered)

        if total == 0:
            logger.warning(f"No klines returned for {request.ticker} on {request.exchange}")
            self.state.advance(1.0)
            return 0, 0

        settled = 0

        async def put(record: MinuteRecord) -> None:
            nonlocal settled
            try:
                await self.sink.put_record(record, request.ticker, request.exchange)
            finally:
                settled += 1
                self.state.advance(FETCH_PHASE_SHARE + settled / total * (1 - FETCH_PHASE_SHARE))

        results = await asyncio.gather(
            *(put(record) for record in ordered),
            return_exceptions=True
        )

        failed = 0
        for record, result in zip(ordered, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error(
                    f"Failed to store kline {record.open_time} for {request.ticker}: {result}"
                )

        return total - failed, failed

    async def _commit(self, plan: ImportPlan) -> bool:
        try:
            await self.registry.replace_span(plan.superseded_span, plan.merged_span)
        except Exception as e:
            failure = e if isinstance(e, RegistryFailure) else RegistryFailure(str(e))
            logger.error(f"Span commit failed, registry may be stale: {failure}")
            return False

        logger.info(f"Span committed: {plan.merged_span.to_dict()}")
        return True
