"""
Core logic for reconciling a requested range with already imported spans

This module handles:
- Overlap detection against the span registry contents
- Trimming the request to the part not yet imported
- Computing the coalesced span that replaces the overlapped one
"""

from typing import Iterable, List, Union
from dataclasses import dataclass
from enum import Enum
import logging

from .core_import_models import ImportRequest, ImportPlan, Span

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    """Why a request cannot be turned into a fetch plan"""
    CONTAINED = "contained"
    UNSUPPORTED_STRADDLE = "unsupported_straddle"


@dataclass(frozen=True)
class Fetch:
    plan: ImportPlan


@dataclass(frozen=True)
class Reject:
    reason: RejectReason
    span: Span


ResolveOutcome = Union[Fetch, Reject]


class OverlapResolver:
    """
    Decides what part of a request still needs fetching.

    Pure computation: the caller owns every read and write of the registry.
    """

    def find_overlaps(self, request: ImportRequest, spans: Iterable[Span]) -> List[Span]:
        """
        Find every span of the request's market that shares a point with it

        Args:
            request: The requested import
            spans: Known imported spans, any market

        Returns:
            Overlapping spans in registry order. A span touching the request
            at one endpoint counts as overlapping.
        """
        return [
            span for span in spans
            if span.same_market(request.ticker, request.exchange)
            and span.start_time <= request.end_time
            and request.start_time <= span.end_time
        ]

    def resolve(self, request: ImportRequest, spans: Iterable[Span]) -> ResolveOutcome:
        """
        Build the fetch plan for a request

        Args:
            request: The requested import, already validated
            spans: Known imported spans

        Returns:
            Fetch(plan) with the trimmed range and merged span, or
            Reject(reason) when nothing can be fetched safely
        """
        overlaps = self.find_overlaps(request, spans)

        if not overlaps:
            return Fetch(ImportPlan(
                request=request,
                fetch_start=request.start_time,
                fetch_end=request.end_time,
                merged_span=Span.from_request(request),
            ))

        if len(overlaps) > 1:
            # would need a multi-segment merge
            logger.debug(f"Request {request} overlaps {len(overlaps)} spans")
            return Reject(RejectReason.UNSUPPORTED_STRADDLE, overlaps[0])

        existing = overlaps[0]
        start, end = request.start_time, request.end_time

        if existing.start_time <= start and end <= existing.end_time:
            logger.debug(f"Request {request} already covered by {existing}")
            return Reject(RejectReason.CONTAINED, existing)

        if start >= existing.start_time and end > existing.end_time:
            # head already imported, fetch the tail
            return Fetch(ImportPlan(
                request=request,
                fetch_start=existing.end_time,
                fetch_end=end,
                merged_span=Span(request.ticker, request.exchange, existing.start_time, end),
                superseded_span=existing,
            ))

        if start < existing.start_time and end <= existing.end_time:
            # tail already imported, fetch the head
            return Fetch(ImportPlan(
                request=request,
                fetch_start=start,
                fetch_end=existing.start_time,
                merged_span=Span(request.ticker, request.exchange, start, existing.end_time),
                superseded_span=existing,
            ))

        return Reject(RejectReason.UNSUPPORTED_STRADDLE, existing)
