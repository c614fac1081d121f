"""Crawler模块 - 导航、抽取、分页与遍历编排"""

from .navigation import NavigationController, NavigationResult
from .extraction import ExtractionEngine, ExtractionResult, records_fingerprint
from .pagination import (
    LoadMorePaginator,
    OffsetPaginator,
    PageBatch,
    PaginationResolver,
    PaginationState,
    build_offset_url,
    create_paginator,
)
from .orchestrator import CrawlOrchestrator, CrawlSummary

__all__ = [
    "NavigationController",
    "NavigationResult",
    "ExtractionEngine",
    "ExtractionResult",
    "records_fingerprint",
    "PaginationResolver",
    "PaginationState",
    "PageBatch",
    "OffsetPaginator",
    "LoadMorePaginator",
    "build_offset_url",
    "create_paginator",
    "CrawlOrchestrator",
    "CrawlSummary",
]
