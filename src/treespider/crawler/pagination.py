"""分页处理模块 - 偏移分页与"加载更多"两种策略共用一个接口

next_batch(state) 产出一批记录与下一个状态（None 表示结束）；
batches() 是驱动 next_batch 直到结束的惰性异步序列。

两种策略都有硬性步数上限，保证即使站点没有暴露结束条件也一定终止。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, AsyncIterator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from playwright.async_api import Error as PlaywrightError

from ..common.exceptions import PaginationBoundExceeded
from ..common.logger import get_logger
from ..common.profile import ListingProfile, PaginationStrategy
from ..common.types import Record, RetryPolicy
from .extraction import ExtractionEngine, records_fingerprint
from .navigation import NavigationController

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaginationState:
    """一次列表遍历的分页状态"""

    strategy: PaginationStrategy
    cursor: int
    max_steps: int
    steps: int = 0
    fingerprint: str | None = None


@dataclass
class PageBatch:
    """一批记录

    marker: 写盘时的页号（offset 策略为偏移量，load_more 策略为 1）
    next_state: None 表示分页结束
    """

    records: list[Record]
    marker: int
    next_state: PaginationState | None
    bound_exceeded: bool = False
    stop_reason: str = ""
    container_matched: bool = True
    clicks: int = 0

    @property
    def done(self) -> bool:
        return self.next_state is None


def build_offset_url(list_url: str, param: str, value: int) -> str:
    """在列表 URL 上设置偏移参数，保留其它查询参数"""
    parsed = urlparse(list_url)
    params = parse_qs(parsed.query, keep_blank_values=True)
    params[param] = [str(value)]
    new_query = urlencode(params, doseq=True)
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        new_query,
        parsed.fragment,
    ))


class PaginationResolver(ABC):
    """分页解析器基类"""

    strategy: PaginationStrategy

    def __init__(
        self,
        page: "Page",
        list_url: str,
        listing: ListingProfile,
        navigator: NavigationController,
        extractor: ExtractionEngine,
        policy: RetryPolicy,
        max_steps: int,
    ):
        self.page = page
        self.list_url = list_url
        self.listing = listing
        self.navigator = navigator
        self.extractor = extractor
        self.policy = policy
        self.max_steps = max_steps

    @abstractmethod
    def initial_state(self) -> PaginationState:
        """初始分页状态"""

    @abstractmethod
    async def next_batch(self, state: PaginationState) -> PageBatch:
        """产出下一批记录

        Raises:
            NavigationError: 第一步导航就失败（节点应标记失败）
        """

    async def batches(self) -> AsyncIterator[PageBatch]:
        """按发现顺序惰性产出全部批次"""
        state: PaginationState | None = self.initial_state()
        while state is not None:
            batch = await self.next_batch(state)
            yield batch
            state = batch.next_state

    async def _extract(self, expect_match: bool):
        return await self.extractor.extract(
            self.page,
            self.listing.container,
            self.listing.rules,
            base_url=self.page.url,
            expect_match=expect_match,
        )


class OffsetPaginator(PaginationResolver):
    """数字偏移分页（?start=N）

    结束条件：导航失败、记录为空、与上一页内容指纹相同、达到 max_steps。
    """

    strategy = PaginationStrategy.OFFSET

    def initial_state(self) -> PaginationState:
        return PaginationState(
            strategy=self.strategy,
            cursor=self.listing.first_offset,
            max_steps=self.max_steps,
        )

    def page_url(self, cursor: int) -> str:
        return build_offset_url(self.list_url, self.listing.offset_param, cursor)

    async def next_batch(self, state: PaginationState) -> PageBatch:
        url = self.page_url(state.cursor)
        logger.info(f"[Pagination] 偏移 {state.cursor}: {url}")

        result = await self.navigator.navigate(self.page, url, self.policy)
        if not result.ok:
            if state.steps == 0:
                raise result.error
            logger.warning(f"[Pagination] 偏移 {state.cursor} 导航失败，结束分页: {url}")
            return PageBatch([], state.cursor, None, stop_reason="navigation_failed")

        extraction = await self._extract(expect_match=state.steps == 0)
        records = extraction.records
        if not records:
            logger.info(f"[Pagination] 偏移 {state.cursor} 无记录，结束分页")
            return PageBatch(
                [], state.cursor, None,
                stop_reason="empty",
                container_matched=extraction.container_matched,
            )

        fingerprint = records_fingerprint(records)
        if fingerprint == state.fingerprint:
            logger.warning(f"[Pagination] 偏移 {state.cursor} 内容与上一页相同，站点可能忽略了偏移，结束分页")
            return PageBatch([], state.cursor, None, stop_reason="repeated")

        steps = state.steps + 1
        if steps >= state.max_steps:
            warning = PaginationBoundExceeded(self.list_url, state.max_steps, self.strategy.value)
            logger.warning(f"[Pagination] {warning}")
            return PageBatch(records, state.cursor, None, bound_exceeded=True, stop_reason="bound")

        next_state = replace(
            state,
            cursor=state.cursor + self.listing.page_size,
            steps=steps,
            fingerprint=fingerprint,
        )
        return PageBatch(records, state.cursor, next_state)


class LoadMorePaginator(PaginationResolver):
    """交互式"加载更多"分页

    反复检查按钮是否存在且可见，存在则点击并等待页面稳定；
    按钮消失或达到点击上限后，对完全展开的页面做一次抽取。
    """

    strategy = PaginationStrategy.LOAD_MORE

    def __init__(
        self,
        *args,
        settle_mode: str = "delay",
        settle_delay_ms: int = 2000,
        settle_timeout_ms: int = 10000,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.settle_mode = settle_mode
        self.settle_delay_ms = settle_delay_ms
        self.settle_timeout_ms = settle_timeout_ms

    def initial_state(self) -> PaginationState:
        return PaginationState(strategy=self.strategy, cursor=0, max_steps=self.max_steps)

    async def next_batch(self, state: PaginationState) -> PageBatch:
        result = await self.navigator.navigate(self.page, self.list_url, self.policy)
        if not result.ok:
            raise result.error

        clicks = 0
        bound_exceeded = False
        while (button := await self._find_affordance()) is not None:
            if clicks >= state.max_steps:
                bound_exceeded = True
                warning = PaginationBoundExceeded(self.list_url, state.max_steps, self.strategy.value)
                logger.warning(f"[Pagination] {warning}，按当前页面状态抽取")
                break
            if not await self._click(button):
                break
            clicks += 1
            logger.debug(f"[Pagination] 已点击加载更多 {clicks} 次")
            await self._settle()

        logger.info(f"[Pagination] 加载更多共点击 {clicks} 次: {self.list_url}")
        extraction = await self._extract(expect_match=True)
        return PageBatch(
            extraction.records,
            1,
            None,
            bound_exceeded=bound_exceeded,
            stop_reason="bound" if bound_exceeded else "exhausted",
            container_matched=extraction.container_matched,
            clicks=clicks,
        )

    async def _find_affordance(self):
        """返回可见的加载更多按钮，不存在或不可见时返回 None"""
        try:
            button = await self.page.query_selector(self.listing.load_more_selector)
            if button is not None and await button.is_visible():
                return button
        except PlaywrightError as e:
            logger.debug(f"[Pagination] 检查加载更多按钮失败: {e}")
        return None

    async def _click(self, button) -> bool:
        try:
            await button.click()
            return True
        except PlaywrightError as e:
            logger.warning(f"[Pagination] 点击加载更多失败，停止点击: {e}")
            return False

    async def _settle(self) -> None:
        if self.settle_mode == "networkidle":
            try:
                await self.page.wait_for_load_state("networkidle", timeout=self.settle_timeout_ms)
            except PlaywrightError:
                # 超时不算错误,继续执行
                pass
        else:
            await self.page.wait_for_timeout(self.settle_delay_ms)


def create_paginator(
    page: "Page",
    list_url: str,
    listing: ListingProfile,
    navigator: NavigationController,
    extractor: ExtractionEngine,
    policy: RetryPolicy,
    max_offset_pages: int = 200,
    max_load_more_clicks: int = 50,
    settle_mode: str = "delay",
    settle_delay_ms: int = 2000,
    settle_timeout_ms: int = 10000,
) -> PaginationResolver:
    """按列表配置选择分页策略"""
    if listing.strategy is PaginationStrategy.LOAD_MORE:
        return LoadMorePaginator(
            page, list_url, listing, navigator, extractor, policy, max_load_more_clicks,
            settle_mode=settle_mode,
            settle_delay_ms=settle_delay_ms,
            settle_timeout_ms=settle_timeout_ms,
        )
    return OffsetPaginator(page, list_url, listing, navigator, extractor, policy, max_offset_pages)
