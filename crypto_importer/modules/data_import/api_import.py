"""
Import API Router

Provides the REST endpoints for starting imports, watching their progress and
listing the imported spans.
"""

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import logging

from .core_import_models import (
    BusyConflict,
    ImportPlan,
    ImportRequest,
    ImporterError,
    InvalidRange,
    RangeConflict,
    RegistryFailure,
    UnsupportedExchange,
)
from .service_import_coordinator import ImportCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Import"])

# Module-level coordinator instance, set during application startup
_coordinator: Optional[ImportCoordinator] = None


def set_import_coordinator(coordinator: Optional[ImportCoordinator]):
    """Set the import coordinator instance"""
    global _coordinator
    _coordinator = coordinator


def _get_coordinator() -> ImportCoordinator:
    if not _coordinator:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Import service not available"
        )
    return _coordinator


def _log_call(request: Request, endpoint: str) -> None:
    client = request.client.host if request.client else "unknown"
    logger.info(f"API Endpoint '{endpoint}' called from {client}")


class NewImportAPIRequest(BaseModel):
    """API request to start an import"""
    ticker: str = Field(..., min_length=1, description="Trading symbol (e.g., BTCUSD)")
    exchange: str = Field(..., min_length=1, description="Exchange name (e.g., binance)")
    startTime: int = Field(..., description="Range start, epoch milliseconds")
    endTime: int = Field(..., description="Range end, epoch milliseconds")

    def to_domain(self) -> ImportRequest:
        return ImportRequest(
            ticker=self.ticker,
            exchange=self.exchange,
            start_time=self.startTime,
            end_time=self.endTime
        )


class ImportAcceptedResponse(BaseModel):
    """Response for an accepted import"""
    status: str
    fetchStart: int
    fetchEnd: int
    mergedSpan: Dict[str, Any]


class CurrentImportResponse(BaseModel):
    """Response describing the running import"""
    exchange: str
    ticker: str
    startTime: int
    endTime: int
    progress: float


class ProgressResponse(BaseModel):
    progress: float


async def _run_import_task(coordinator: ImportCoordinator, plan: ImportPlan):
    """Background task driving the fetch and persist phases"""
    try:
        report = await coordinator.run_import(plan)
        logger.debug(f"Import report: {report.to_dict()}")
    except ImporterError as e:
        logger.error(f"Background import failed: {e}")
    except Exception as e:
        logger.exception(f"Unexpected error in background import: {e}")


@router.post("/newimport", response_model=ImportAcceptedResponse)
async def new_import(body: NewImportAPIRequest, request: Request, background_tasks: BackgroundTasks):
    """
    Start an import; the data is fetched after the response is sent
    """
    _log_call(request, "/newimport")
    coordinator = _get_coordinator()

    try:
        plan = await coordinator.begin_import(body.to_domain())
    except BusyConflict as e:
        raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail=str(e))
    except (InvalidRange, UnsupportedExchange, RangeConflict) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RegistryFailure as e:
        logger.error(f"Span registry unavailable: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    background_tasks.add_task(_run_import_task, coordinator, plan)

    return ImportAcceptedResponse(
        status="accepted",
        fetchStart=plan.fetch_start,
        fetchEnd=plan.fetch_end,
        mergedSpan=plan.merged_span.to_dict()
    )


@router.get("/currentimport", response_model=CurrentImportResponse)
async def current_import(request: Request):
    """
    Details of the running import, 204 when idle
    """
    _log_call(request, "/currentimport")
    state = _get_coordinator().snapshot()

    if not state.active or state.request is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return CurrentImportResponse(
        exchange=state.request.exchange,
        ticker=state.request.ticker,
        startTime=state.request.start_time,
        endTime=state.request.end_time,
        progress=state.progress
    )


@router.get("/progress", response_model=ProgressResponse)
async def progress(request: Request):
    """
    Progress of the running import, 204 when idle
    """
    _log_call(request, "/progress")
    state = _get_coordinator().snapshot()

    if not state.active:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return ProgressResponse(progress=state.progress)


@router.get("/datasets")
async def datasets(request: Request) -> List[Dict[str, Any]]:
    """
    Every imported span, re-read from the registry
    """
    _log_call(request, "/datasets")
    coordinator = _get_coordinator()

    try:
        spans = await coordinator.registry.list_spans()
    except RegistryFailure as e:
        logger.error(f"Failed to list spans: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return [span.to_dict() for span in spans]
