"""TreeSpider - 按站点分类层级遍历的浏览器爬虫"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .crawler.orchestrator import CrawlOrchestrator as CrawlOrchestrator
    from .crawler.orchestrator import CrawlSummary as CrawlSummary
    from .common.profile import load_profile as load_profile

__all__ = [
    "__version__",
    "CrawlOrchestrator",
    "CrawlSummary",
    "load_profile",
]


def __getattr__(name: str) -> Any:
    """Lazy exports to avoid importing playwright at package import time."""
    if name in {"CrawlOrchestrator", "CrawlSummary"}:
        from .crawler.orchestrator import CrawlOrchestrator, CrawlSummary

        return CrawlOrchestrator if name == "CrawlOrchestrator" else CrawlSummary
    if name == "load_profile":
        from .common.profile import load_profile

        return load_profile
    raise AttributeError(f"module 'treespider' has no attribute '{name}'")
