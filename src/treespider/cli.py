"""CLI 入口"""

from __future__ import annotations

import asyncio
import threading

import typer
from rich.panel import Panel
from rich.table import Table

from .common.browser import create_browser_session
from .common.config import RunConfig, config
from .common.exceptions import ConfigError, SetupError
from .common.logger import console, get_logger, setup_package_file_logging
from .common.profile import SiteProfile, load_profile
from .common.storage import CheckpointStore
from .crawler.orchestrator import CrawlOrchestrator, CrawlSummary

# 日志器
logger = get_logger(__name__)

app = typer.Typer(
    name="treespider",
    help="TreeSpider CLI - 层级站点爬取工具",
    add_completion=False,
)


def run_async_safely(coro):
    """在 CLI 同步上下文中安全执行协程。"""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # 没有运行中的事件循环，直接使用 asyncio.run
        # Ctrl+C 时 asyncio.run 会取消主任务，编排器借此保存断点
        return asyncio.run(coro)

    # 已有运行中的事件循环，需要在新线程中创建新的事件循环
    result_holder: dict[str, object] = {"result": None, "error": None}

    def _runner():
        try:
            result_holder["result"] = asyncio.run(coro)
        except BaseException as exc:  # noqa: BLE001 - 在调用线程中重新抛出
            result_holder["error"] = exc

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    thread.join()

    if result_holder["error"] is not None:
        raise result_holder["error"]  # type: ignore[misc]
    return result_holder["result"]


def _error_panel(message: str, title: str = "执行错误") -> None:
    console.print(Panel(f"[red]{message}[/red]", title=title, style="red"))


def _build_summary_table(summary: CrawlSummary) -> Table:
    """构建运行摘要表格"""
    table = Table(title="运行摘要")
    table.add_column("项目", style="cyan")
    table.add_column("数量", style="green", justify="right")

    table.add_row("完成节点", str(summary.completed))
    table.add_row("失败节点", str(summary.failed))
    table.add_row("跳过（断点）", str(summary.skipped))
    table.add_row("列表记录", str(summary.records))
    table.add_row("页面快照", str(summary.snapshots))
    if summary.cancelled:
        table.add_row("状态", "[yellow]已中止，可续爬[/yellow]")
    return table


@app.command("crawl")
def crawl_command(
    profile: str = typer.Option(
        "dealnews_categories",
        "--profile",
        "-p",
        help="站点配置名称（profiles/ 下）或 YAML 文件路径",
    ),
    output_dir: str | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="输出目录（默认取 OUTPUT_DIR）",
    ),
    year: int | None = typer.Option(
        None,
        "--year",
        "-y",
        help="只爬取指定年份（归档配置）",
    ),
    category: str | None = typer.Option(
        None,
        "--category",
        "-c",
        help="只爬取指定分类（分类配置，不区分大小写）",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--no-headless",
        help="是否使用无头模式（默认取 HEADLESS）",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        help="详情页并发页面数（默认取 DETAIL_CONCURRENCY）",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="整体运行超时（秒），0 表示不限制",
    ),
    fresh: bool = typer.Option(
        False,
        "--fresh",
        help="忽略并清除已有断点，从头爬取",
    ),
    log_file: str | None = typer.Option(
        None,
        "--log-file",
        help="额外写入的日志文件",
    ),
):
    """
    从根页面开始遍历：分类 → 子分类 → 列表分页 → 详情页

    中断或超时后再次运行同一命令即可从断点继续。

    示例:
        treespider crawl --profile dealnews_categories --category Electronics
        treespider crawl --profile dealnews_archives --year 2015 --concurrency 3
    """
    try:
        site = load_profile(profile)
        run_config = RunConfig.from_config(
            output_dir=output_dir,
            detail_concurrency=max(1, concurrency) if concurrency is not None else None,
            run_timeout_s=timeout,
            resume=False if fresh else None,
        )
    except ConfigError as e:
        _error_panel(str(e), title="配置错误")
        raise typer.Exit(1)

    if log_file:
        setup_package_file_logging(log_file)

    use_headless = headless if headless is not None else config.browser.headless
    console.print(
        Panel(
            f"[bold]站点配置:[/bold] {site.name}\n"
            f"[bold]输出目录:[/bold] {run_config.output_dir}\n"
            f"[bold]年份:[/bold] {year if year is not None else '全部'}\n"
            f"[bold]分类:[/bold] {category or '全部'}\n"
            f"[bold]详情并发:[/bold] {run_config.detail_concurrency}\n"
            f"[bold]运行超时:[/bold] {run_config.run_timeout_s or '不限制'}\n"
            f"[bold]断点续爬:[/bold] {'是' if run_config.resume else '否'}\n"
            f"[bold]无头模式:[/bold] {use_headless}",
            title="TreeSpider",
            style="cyan",
        )
    )

    try:
        summary = run_async_safely(
            _run_crawl(
                site=site,
                run_config=run_config,
                headless=use_headless,
                year=year,
                category=category,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]用户中断，断点已保存[/yellow]")
        raise typer.Exit(130)
    except SetupError as e:
        _error_panel(str(e), title="启动失败")
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("[CLI] 运行异常终止")
        _error_panel(str(e))
        raise typer.Exit(1)

    console.print(_build_summary_table(summary))
    if summary.failed:
        console.print(
            f"[yellow]{summary.failed} 个节点失败，详见 {run_config.output_dir}/run_summary.json，"
            f"再次运行将自动重试[/yellow]"
        )


@app.command("checkpoint")
def checkpoint_command(
    output_dir: str | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="输出目录（默认取 OUTPUT_DIR）",
    ),
):
    """查看断点状态"""
    store = CheckpointStore(output_dir or config.crawler.output_dir)
    if not store.has_checkpoint():
        console.print(f"[yellow]没有断点: {store.checkpoint_file}[/yellow]")
        return

    state = store.load()
    table = Table(title=f"断点 {store.checkpoint_file}")
    table.add_column("项目", style="cyan")
    table.add_column("值", style="green")
    table.add_row("已完成", str(len(state.completed)))
    table.add_row("待处理", str(len(state.pending)))
    table.add_row("失败", str(len(state.failed)))
    table.add_row("更新时间", state.last_updated or "-")
    console.print(table)

    if state.failed:
        failed_table = Table(title="失败节点")
        failed_table.add_column("类型", style="magenta")
        failed_table.add_column("路径", style="cyan")
        failed_table.add_column("原因", style="red")
        for node, reason in state.failed.values():
            failed_table.add_row(node.kind.value, "/".join(node.path) or node.url, reason)
        console.print(failed_table)


async def _run_crawl(
    site: SiteProfile,
    run_config: RunConfig,
    headless: bool,
    year: int | None,
    category: str | None,
) -> CrawlSummary:
    """异步运行一次遍历"""
    async with create_browser_session(
        headless=headless,
        page_count=run_config.detail_concurrency,
        close_engine=True,
    ) as session:
        orchestrator = CrawlOrchestrator(
            session.page,
            site,
            run_config,
            detail_pages=session.pages,
            year=year,
            category=category,
        )
        return await orchestrator.run()


def main():
    """CLI 入口点

    供 pyproject.toml 中 [project.scripts] 调用。
    """
    app()


if __name__ == "__main__":
    main()
