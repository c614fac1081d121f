"""
异步浏览器引擎

提供全局唯一的 Browser 实例管理，每个页面使用独立的 BrowserContext，
并发 worker 之间互不共享页面状态。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional, AsyncGenerator, Dict, List, Literal, Any
from playwright.async_api import async_playwright, Browser, Playwright, Page
from playwright.async_api import Error as PlaywrightError
from playwright_stealth import Stealth
from loguru import logger

from ..exceptions import SetupError


class BrowserEngine:
    """
    异步浏览器引擎：
    1. 管理全局唯一的 Browser 实例。
    2. 启动失败时按次数重试，最终失败抛出 SetupError。
    3. 通过 page() 获取的页面各自拥有独立的上下文。
    """

    def __init__(
        self,
        default_headless: bool = True,
        default_viewport: Optional[Dict[str, int]] = None,
        default_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
        default_launch_args: Optional[List[str]] = None,
        default_browser_type: Literal["chromium", "firefox", "webkit"] = "chromium",
        max_retries: int = 2,
        default_timeout: int = 120000,
    ):
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._stealth_context: Optional[Any] = None
        self._current_headless: bool = default_headless
        self._lock = asyncio.Lock()
        self._owner_loop: Optional[asyncio.AbstractEventLoop] = None

        self.default_headless = default_headless
        self.default_viewport = default_viewport or {"width": 1280, "height": 720}
        self.default_user_agent = default_user_agent
        self.default_browser_type = default_browser_type
        self.max_retries = max_retries
        self.default_timeout = default_timeout

        self.default_launch_args = default_launch_args or [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-blink-features=AutomationControlled",
            "--disable-infobars",
            "--disable-extensions",
            "--no-first-run",
        ]

    async def _ensure_browser(self, headless: bool):
        """
        确保全局 Browser 实例存活且可用

        Args:
            headless: 是否以无头模式运行浏览器

        Raises:
            SetupError: 多次重试后浏览器仍无法启动
        """
        current_loop = asyncio.get_running_loop()

        async with self._lock:
            should_restart = False

            # Event Loop 变化后旧实例无法复用
            if self._browser and self._owner_loop and self._owner_loop != current_loop:
                logger.warning("Event Loop changed. Restarting browser...")
                should_restart = True
            elif not self._browser or not self._browser.is_connected():
                should_restart = True
            # Playwright 不支持动态切换 headless
            elif self._current_headless != headless:
                logger.info(f"Switching Headless Mode: {headless}")
                should_restart = True

            if not should_restart:
                return

            if self._browser and self._owner_loop == current_loop:
                try:
                    await self._browser.close()
                except PlaywrightError:
                    logger.debug("[Engine] 关闭旧浏览器失败，可能已崩溃")

            try:
                if not self._playwright:
                    self._stealth_context = Stealth().use_async(async_playwright())
                    self._playwright = await self._stealth_context.__aenter__()
            except Exception as e:  # noqa: BLE001
                raise SetupError(f"Playwright 启动失败: {e}") from e

            for attempt in range(self.max_retries + 1):
                try:
                    launcher = getattr(self._playwright, self.default_browser_type)
                    self._browser = await launcher.launch(
                        headless=headless,
                        args=self.default_launch_args,
                    )
                    self._current_headless = headless
                    self._owner_loop = current_loop
                    logger.debug(f"[Engine] 浏览器已启动 (attempt {attempt + 1})")
                    break
                except PlaywrightError as e:
                    logger.warning(f"[Engine] 浏览器启动失败 (attempt {attempt + 1}): {e}")
                    if attempt == self.max_retries:
                        raise SetupError(f"浏览器启动失败: {e}") from e

    @asynccontextmanager
    async def page(
        self,
        headless: Optional[bool] = None,
        proxy: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        **context_kwargs,
    ) -> AsyncGenerator[Page, None]:
        """
        获取一个 Page 对象（独立 BrowserContext）。

        Args:
            headless: 是否无头模式
            proxy: 代理配置，如 {"server": "http://proxy:8080"}
            timeout: 页面默认超时（毫秒）
            **context_kwargs: 传递给 browser.new_context 的其他参数
        """
        use_headless = headless if headless is not None else self.default_headless
        await self._ensure_browser(use_headless)

        options = {
            "viewport": self.default_viewport,
            "user_agent": self.default_user_agent,
            "ignore_https_errors": True,
            **context_kwargs,
        }
        if proxy:
            options["proxy"] = proxy

        context = await self._browser.new_context(**options)
        page = await context.new_page()
        page.set_default_timeout(timeout or self.default_timeout)
        page.set_default_navigation_timeout(timeout or self.default_timeout)

        try:
            yield page
        finally:
            await page.close()
            await context.close()

    async def close(self):
        """彻底关闭引擎"""
        current_loop = asyncio.get_running_loop()
        if self._browser and self._owner_loop == current_loop:
            await self._browser.close()
        if self._stealth_context and self._owner_loop == current_loop:
            await self._stealth_context.__aexit__(None, None, None)
        self._browser = None
        self._playwright = None
        self._stealth_context = None


# ========== 全局单例管理 ==========
_browser_engine: Optional[BrowserEngine] = None


async def get_browser_engine(**config) -> BrowserEngine:
    """
    获取全局 BrowserEngine 单例。

    首次调用时可传入配置参数初始化引擎，后续调用忽略参数返回已有实例。
    """
    global _browser_engine
    if _browser_engine is None:
        _browser_engine = BrowserEngine(**config)
    return _browser_engine


async def shutdown_browser_engine() -> None:
    """关闭并重置全局引擎"""
    global _browser_engine
    if _browser_engine is not None:
        engine = _browser_engine
        _browser_engine = None
        await engine.close()
