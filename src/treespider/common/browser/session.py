"""浏览器会话管理"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncGenerator

from playwright.async_api import Page

from ..config import config
from ..logger import get_logger
from .engine import BrowserEngine, get_browser_engine, shutdown_browser_engine

logger = get_logger(__name__)


class BrowserSession:
    """浏览器会话管理器

    打开 page_count 个页面：第一个是主页面（列表遍历），
    其余作为详情页 worker，每个页面拥有独立的 BrowserContext。
    """

    def __init__(
        self,
        headless: bool | None = None,
        viewport_width: int | None = None,
        viewport_height: int | None = None,
        page_count: int = 1,
    ):
        self.headless = headless if headless is not None else config.browser.headless
        self.viewport_width = viewport_width or config.browser.viewport_width
        self.viewport_height = viewport_height or config.browser.viewport_height
        self.page_count = max(1, page_count)

        self._engine: BrowserEngine | None = None
        self._stack: AsyncExitStack | None = None
        self._pages: list[Page] = []

    async def start(self) -> Page:
        """启动浏览器并返回主 Page

        Raises:
            SetupError: 浏览器无法启动
        """
        self._engine = await get_browser_engine(
            default_headless=self.headless,
            default_viewport={"width": self.viewport_width, "height": self.viewport_height},
            default_user_agent=config.browser.user_agent,
            default_timeout=config.browser.nav_timeout_ms,
        )
        self._stack = AsyncExitStack()
        try:
            for _ in range(self.page_count):
                page = await self._stack.enter_async_context(
                    self._engine.page(headless=self.headless, timeout=config.browser.nav_timeout_ms)
                )
                self._pages.append(page)
        except BaseException:
            await self.stop()
            raise
        logger.info(f"[Browser] 会话已启动，页面数: {len(self._pages)}")
        return self._pages[0]

    async def stop(self) -> None:
        """关闭浏览器会话"""
        if self._stack:
            await self._stack.aclose()
        self._stack = None
        self._pages = []
        # 注意: 不关闭全局引擎,因为它是单例,可能被其他会话使用

    @property
    def page(self) -> Page | None:
        return self._pages[0] if self._pages else None

    @property
    def pages(self) -> list[Page]:
        return list(self._pages)


@asynccontextmanager
async def create_browser_session(
    headless: bool | None = None,
    page_count: int = 1,
    close_engine: bool = False,
) -> AsyncGenerator[BrowserSession, None]:
    """创建浏览器会话的上下文管理器"""
    session = BrowserSession(headless=headless, page_count=page_count)
    try:
        await session.start()
        yield session
    finally:
        await session.stop()
        if close_engine:
            # CLI 单次运行后关闭全局引擎，避免事件循环结束时残留连接
            await shutdown_browser_engine()
