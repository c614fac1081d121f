"""爬取编排器

持有待处理节点的 FIFO 前沿，逐个驱动：
Root → Category / Subcategory / ListingPage（分页）→ DetailItem（详情）。

节点状态: PENDING → IN_PROGRESS → {COMPLETED, FAILED}
- 节点产生的记录写盘、子节点入队之后才标记 COMPLETED 并写入断点；
- 任意单个节点的失败只会把该节点标记为 FAILED，运行继续；
- 运行超时或被取消时，进行中的节点标记为 FAILED，断点照常保存。
"""

from __future__ import annotations

import asyncio
import hashlib
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ..common.config import RunConfig
from ..common.exceptions import ExtractionConfigMismatch, StorageWriteError, TreeSpiderError
from ..common.logger import get_logger
from ..common.profile import LinkLevel, SiteProfile
from ..common.storage import CheckpointState, CheckpointStore, OutputWriter
from ..common.types import CrawlNode, NodeKind, NodeStatus, Record
from ..common.utils.delay import get_random_delay
from .extraction import ExtractionEngine
from .navigation import NavigationController
from .pagination import create_paginator

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = get_logger(__name__)


@dataclass
class CrawlSummary:
    """运行摘要"""

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    records: int = 0
    snapshots: int = 0
    cancelled: bool = False
    failures: dict[str, str] = field(default_factory=dict)
    started_at: str = ""
    finished_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "records": self.records,
            "snapshots": self.snapshots,
            "cancelled": self.cancelled,
            "failures": dict(self.failures),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


class CrawlOrchestrator:
    """爬取编排器"""

    def __init__(
        self,
        page: "Page",
        profile: SiteProfile,
        run_config: RunConfig,
        detail_pages: list["Page"] | None = None,
        navigator: NavigationController | None = None,
        extractor: ExtractionEngine | None = None,
        writer: OutputWriter | None = None,
        checkpoint: CheckpointStore | None = None,
        year: int | None = None,
        category: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """初始化

        Args:
            page: 主页面，用于根页面与列表页
            profile: 站点配置
            run_config: 本次运行配置
            detail_pages: 详情页 worker 页面，多于一个时详情页并发抓取
            year: 只爬取该年份（归档模式）
            category: 只爬取该分类（分类模式，不区分大小写）
        """
        self.page = page
        self.profile = profile
        self.run_config = run_config
        self.detail_pages = list(detail_pages) if detail_pages else [page]
        self.navigator = navigator or NavigationController(
            timeout_ms=run_config.nav_timeout_ms, sleep=sleep
        )
        self.extractor = extractor or ExtractionEngine()
        self.writer = writer or OutputWriter(run_config.output_dir, run_config.write_mode)
        self.checkpoint = checkpoint or CheckpointStore(run_config.output_dir)
        self.year = year
        self.category = category.strip().lower() if category else None
        self._item_id_default = next(
            (rule.default for rule in profile.listing.rules if rule.name == profile.listing.item_id_field),
            None,
        )
        self._sleep = sleep

        self.frontier: deque[CrawlNode] = deque()
        self.status: dict[str, NodeStatus] = {}
        self.summary = CrawlSummary()
        self._completed: set[str] = set()
        self._failed: dict[str, tuple[CrawlNode, str]] = {}
        # 已出队但尚未结束的节点
        self._active: dict[str, CrawlNode] = {}
        self._seen: set[str] = set()
        self._stop_requested = False

    # ========================================================================
    # 运行控制
    # ========================================================================

    def request_stop(self) -> None:
        """处理完当前节点后停止拉取新节点"""
        self._stop_requested = True

    async def run(self) -> CrawlSummary:
        """遍历直到前沿为空，返回运行摘要"""
        self.summary.started_at = datetime.now().isoformat()
        self._seed()
        logger.info(f"[Orchestrator] 开始遍历 {self.profile.name}，待处理节点 {len(self.frontier)} 个")

        try:
            if self.run_config.run_timeout_s:
                await asyncio.wait_for(self._drain(), timeout=self.run_config.run_timeout_s)
            else:
                await self._drain()
        except asyncio.TimeoutError:
            logger.warning("[Orchestrator] 运行超时，停止拉取新节点")
            self._abort("运行超时")
        except asyncio.CancelledError:
            logger.warning("[Orchestrator] 运行被取消，保存断点")
            self._abort("运行被取消")
            raise
        finally:
            self._finish()
        return self.summary

    def _seed(self) -> None:
        if self.run_config.resume:
            state = self.checkpoint.load()
        else:
            self.checkpoint.clear()
            state = CheckpointState()

        root = CrawlNode.root(self.profile.taxonomy.root_url if self.profile.taxonomy else "")
        # 根节点每次都要重新展开，年份/分类过滤只在展开时生效
        self._completed = set(state.completed) - {root.id}
        if self._completed:
            logger.info(f"[Orchestrator] 从断点恢复：已完成 {len(self._completed)} 个节点")

        self._enqueue(root)
        for node in state.pending:
            self._enqueue(node)
        for node, reason in state.failed.values():
            logger.info(f"[Orchestrator] 重试上次失败的节点 {node.label or node.url}（{reason}）")
            self._enqueue(node)

    async def _drain(self) -> None:
        while self.frontier and not self._stop_requested:
            node = self.frontier.popleft()
            self._active[node.id] = node

            if node.kind is NodeKind.DETAIL_ITEM and len(self.detail_pages) > 1:
                group = [node]
                while (
                    self.frontier
                    and self.frontier[0].kind is NodeKind.DETAIL_ITEM
                    and self.frontier[0].parent_id == node.parent_id
                ):
                    sibling = self.frontier.popleft()
                    self._active[sibling.id] = sibling
                    group.append(sibling)
                await self._run_detail_group(group)
            else:
                await self._handle(node, self.page)

        if self._stop_requested and self.frontier:
            logger.info(f"[Orchestrator] 已请求停止，剩余 {len(self.frontier)} 个节点留待下次运行")

    async def _run_detail_group(self, group: list[CrawlNode]) -> None:
        """同一列表下的详情页交给有界页面池并发处理"""
        pool: asyncio.Queue = asyncio.Queue()
        for worker_page in self.detail_pages:
            pool.put_nowait(worker_page)

        async def worker(node: CrawlNode) -> None:
            worker_page = await pool.get()
            try:
                await self._handle(node, worker_page)
            finally:
                pool.put_nowait(worker_page)

        logger.info(f"[Orchestrator] 并发抓取 {len(group)} 个详情页（{len(self.detail_pages)} 个页面）")
        await asyncio.gather(*(worker(node) for node in group))

    # ========================================================================
    # 节点处理
    # ========================================================================

    async def _handle(self, node: CrawlNode, page: "Page") -> None:
        self.status[node.id] = NodeStatus.IN_PROGRESS
        logger.debug(f"[Orchestrator] 处理 {node.kind.value}: {node.label or node.url}")
        try:
            await self._process(node, page)
        except TreeSpiderError as e:
            self._fail(node, str(e))
        except Exception as e:  # noqa: BLE001 - 单个节点的异常不能终止整次运行
            logger.exception(f"[Orchestrator] 节点处理出现未预期错误: {node.url}")
            self._fail(node, f"{type(e).__name__}: {e}")
        else:
            self._complete(node)

    async def _process(self, node: CrawlNode, page: "Page") -> None:
        if node.kind is NodeKind.ROOT:
            await self._expand_root(node, page)
        elif node.kind.is_listing:
            await self._crawl_listing(node, page)
        else:
            await self._fetch_detail(node, page)

    async def _expand_root(self, node: CrawlNode, page: "Page") -> None:
        archive = self.profile.archive
        if archive is not None:
            years = [self.year] if self.year else archive.years()
            for year in years:
                url = archive.url_template.format(year=year)
                self._enqueue(CrawlNode.child(node, NodeKind.LISTING_PAGE, url, (str(year),), label=str(year)))
            logger.info(f"[Orchestrator] 归档年份: {years[0] if years else '-'} ~ {years[-1] if years else '-'}")
            return

        taxonomy = self.profile.taxonomy
        result = await self.navigator.navigate(page, taxonomy.root_url, self.run_config.retry_policy)
        if not result.ok:
            raise result.error

        categories = await self._extract_links(page, taxonomy.categories, page.url)
        if not categories:
            logger.warning(f"[Orchestrator] {ExtractionConfigMismatch(taxonomy.categories.container, taxonomy.root_url)}")
        self.writer.write_taxonomy(categories)

        selected = [
            entry for entry in categories
            if self.category is None or entry["name"].strip().lower() == self.category
        ]
        if self.category is not None and not selected:
            logger.warning(f"[Orchestrator] 未找到分类: {self.category}")
        for entry in selected:
            self._enqueue_taxonomy(node, entry, (), depth=0)
        logger.info(f"[Orchestrator] 发现 {len(categories)} 个分类，入队 {len(selected)} 个")

    async def _extract_links(self, scope: Any, level: LinkLevel, base_url: str) -> list[dict[str, Any]]:
        entries = []
        for element in await self.extractor.select(scope, level.container):
            record = await self.extractor.extract_record(element, level.rules, base_url)
            entry: dict[str, Any] = {"name": record.get("name") or "Unknown", "link": record.get("url") or ""}
            if level.children is not None:
                entry["subcategories"] = await self._extract_links(element, level.children, base_url)
            entries.append(entry)
        return entries

    def _enqueue_taxonomy(self, parent: CrawlNode, entry: dict[str, Any], prefix: tuple[str, ...], depth: int) -> None:
        kind = NodeKind.CATEGORY if depth == 0 else NodeKind.SUBCATEGORY
        path = prefix + (entry["name"],)
        node = CrawlNode.child(parent, kind, entry["link"], path, label=entry["name"])
        crawl_self = kind is NodeKind.SUBCATEGORY or self.profile.taxonomy.crawl_categories
        if crawl_self and entry["link"]:
            self._enqueue(node)
        for child in entry.get("subcategories", []):
            self._enqueue_taxonomy(node, child, path, depth + 1)

    async def _crawl_listing(self, node: CrawlNode, page: "Page") -> None:
        listing = self.profile.listing
        cfg = self.run_config
        paginator = create_paginator(
            page,
            node.url,
            listing,
            self.navigator,
            self.extractor,
            cfg.retry_policy,
            max_offset_pages=cfg.max_offset_pages,
            max_load_more_clicks=cfg.max_load_more_clicks,
            settle_mode=cfg.settle_mode,
            settle_delay_ms=cfg.settle_delay_ms,
            settle_timeout_ms=cfg.settle_timeout_ms,
        )

        total = 0
        details = 0
        async for batch in paginator.batches():
            if not batch.records:
                continue
            self.writer.write_listing(node.path, batch.marker, batch.records)
            total += len(batch.records)
            self.summary.records += len(batch.records)
            for record in batch.records:
                if self._enqueue_detail(node, record):
                    details += 1

        logger.info(f"[Orchestrator] 列表 {node.label or node.url}: {total} 条记录，{details} 个详情页入队")

    def _enqueue_detail(self, parent: CrawlNode, record: Record) -> bool:
        listing = self.profile.listing
        if self.profile.detail is None or not listing.detail_url_field:
            return False
        url = record.get(listing.detail_url_field)
        if not url:
            return False
        item_id = record.get(listing.item_id_field) if listing.item_id_field else None
        # 取到的是规则默认值时各条目会共用同一个文件名
        if not item_id or item_id == self._item_id_default:
            item_id = hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]
        child = CrawlNode.child(parent, NodeKind.DETAIL_ITEM, url, parent.path, label=item_id, item_id=item_id)
        return self._enqueue(child)

    async def _fetch_detail(self, node: CrawlNode, page: "Page") -> None:
        detail = self.profile.detail
        result = await self.navigator.navigate(page, node.url, self.run_config.retry_policy)
        if not result.ok:
            raise result.error

        if detail.save_snapshot:
            html = await page.content()
            self.writer.write_snapshot(node.path, node.item_id, html)
            self.summary.snapshots += 1
        if detail.rules:
            record = await self.extractor.extract_document(page, detail.rules)
            self.writer.write_item(node.path, node.item_id, record)

        delay = get_random_delay(self.run_config.detail_delay, self.run_config.detail_delay_random)
        if delay > 0:
            await self._sleep(delay)

    # ========================================================================
    # 状态与断点
    # ========================================================================

    def _enqueue(self, node: CrawlNode) -> bool:
        if node.id in self._completed:
            self.summary.skipped += 1
            return False
        if node.id in self._seen:
            return False
        self._seen.add(node.id)
        self.status[node.id] = NodeStatus.PENDING
        self.frontier.append(node)
        return True

    def _complete(self, node: CrawlNode) -> None:
        self.status[node.id] = NodeStatus.COMPLETED
        self._completed.add(node.id)
        self._active.pop(node.id, None)
        self.summary.completed += 1
        self._save_checkpoint()

    def _fail(self, node: CrawlNode, reason: str) -> None:
        self.status[node.id] = NodeStatus.FAILED
        self._failed[node.id] = (node, reason)
        self._active.pop(node.id, None)
        self.summary.failed += 1
        self.summary.failures[node.id] = reason
        logger.error(f"[Orchestrator] 节点失败 {node.kind.value} {node.label or node.url}: {reason}")
        self._save_checkpoint()

    def _abort(self, reason: str) -> None:
        self.summary.cancelled = True
        for node in list(self._active.values()):
            if self.status.get(node.id) is NodeStatus.IN_PROGRESS:
                self._fail(node, reason)
        self._save_checkpoint()

    def _save_checkpoint(self) -> None:
        pending = list(self._active.values()) + list(self.frontier)
        try:
            self.checkpoint.save(self._completed, pending, self._failed)
        except StorageWriteError as e:
            logger.error(f"[Orchestrator] {e}")

    def _finish(self) -> None:
        self.summary.finished_at = datetime.now().isoformat()
        try:
            self.writer.write_summary(self.summary.to_dict())
        except StorageWriteError as e:
            logger.error(f"[Orchestrator] 运行摘要保存失败: {e}")
        logger.info(
            f"[Orchestrator] 遍历结束: 完成 {self.summary.completed}，失败 {self.summary.failed}，"
            f"跳过 {self.summary.skipped}，记录 {self.summary.records}，快照 {self.summary.snapshots}"
        )
