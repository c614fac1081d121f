"""浏览器模块 - Playwright 引擎与会话"""

from .engine import BrowserEngine, get_browser_engine, shutdown_browser_engine
from .session import BrowserSession, create_browser_session

__all__ = [
    "BrowserEngine",
    "get_browser_engine",
    "shutdown_browser_engine",
    "BrowserSession",
    "create_browser_session",
]
