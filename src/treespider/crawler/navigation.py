"""导航处理模块 - 带固定退避的重试页面加载"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from playwright.async_api import Error as PlaywrightError

from ..common.exceptions import HttpStatusFailure, NavigationError, TransientNavigationFailure
from ..common.logger import get_logger
from ..common.types import RetryPolicy

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)


@dataclass
class NavigationResult:
    """一次导航（含重试）的结果"""

    url: str
    attempts: int
    status: int | None = None
    response: Any = None
    error: NavigationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class NavigationController:
    """导航控制器，负责单个 URL 的有限次重试加载"""

    def __init__(
        self,
        timeout_ms: int = 120000,
        wait_until: str = "domcontentloaded",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.timeout_ms = timeout_ms
        self.wait_until = wait_until
        self._sleep = sleep

    async def navigate(self, page: "Page", url: str, policy: RetryPolicy) -> NavigationResult:
        """
        加载 URL，最多尝试 policy.max_attempts 次

        只有返回了响应且状态码 < 400 才算成功；无响应、抛出异常或
        状态码 >= 400 都算一次失败。失败之间固定等待 policy.backoff_delay 秒。

        Returns:
            NavigationResult，失败时 error 中携带最后一次的状态码与原因，不抛出
        """
        error: NavigationError | None = None
        status: int | None = None
        attempt = 0

        while attempt < policy.max_attempts:
            attempt += 1
            try:
                response = await page.goto(url, wait_until=self.wait_until, timeout=self.timeout_ms)
            except (PlaywrightError, asyncio.TimeoutError, OSError) as e:
                error = TransientNavigationFailure(url, cause=e, attempts=attempt)
                status = None
            else:
                status = getattr(response, "status", None) if response is not None else None
                if response is None or status is None:
                    error = TransientNavigationFailure(url, attempts=attempt)
                elif status >= 400:
                    error = HttpStatusFailure(url, status, attempts=attempt)
                else:
                    if attempt > 1:
                        logger.info(f"[Navigate] 第 {attempt} 次尝试成功: {url}")
                    return NavigationResult(url=url, attempts=attempt, status=status, response=response)

            logger.warning(f"[Navigate] 尝试 {attempt}/{policy.max_attempts} 失败: {error}")

            if policy.is_terminal_failure(status):
                logger.warning(f"[Navigate] 状态码 {status} 为终止状态，不再重试: {url}")
                break
            if attempt < policy.max_attempts:
                await self._sleep(policy.backoff_delay)

        logger.error(f"[Navigate] {attempt} 次尝试后放弃: {url}")
        return NavigationResult(url=url, attempts=attempt, status=status, error=error)
