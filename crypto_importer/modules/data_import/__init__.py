"""
Data Import Module - Imports historical klines without refetching known ranges
"""

from .core_import_models import ImportRequest, ImportState, Span, MinuteRecord
from .core_overlap_resolver import OverlapResolver
from .core_batch_fetcher import BatchFetcher
from .service_import_coordinator import ImportCoordinator, ImportConfig, PersistPolicy
from .api_import import router as import_router

__all__ = [
    'ImportRequest',
    'ImportState',
    'Span',
    'MinuteRecord',
    'OverlapResolver',
    'BatchFetcher',
    'ImportCoordinator',
    'ImportConfig',
    'PersistPolicy',
    'import_router',
]
