"""配置管理"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .types import RetryPolicy

# 加载 .env 文件
load_dotenv()


def _parse_statuses(raw: str) -> list[int]:
    return [int(item) for item in raw.replace(" ", "").split(",") if item]


class BrowserConfig(BaseModel):
    """浏览器配置"""

    headless: bool = Field(default_factory=lambda: os.getenv("HEADLESS", "true").lower() == "true")
    viewport_width: int = Field(default_factory=lambda: int(os.getenv("VIEWPORT_WIDTH", "1280")))
    viewport_height: int = Field(default_factory=lambda: int(os.getenv("VIEWPORT_HEIGHT", "720")))
    # 单次导航超时（毫秒），目标站点响应慢，默认给足 120 秒
    nav_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("NAV_TIMEOUT_MS", "120000")))
    user_agent: str = Field(
        default_factory=lambda: os.getenv(
            "USER_AGENT",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
        )
    )


class RetryConfig(BaseModel):
    """导航重试配置"""

    max_attempts: int = Field(default_factory=lambda: int(os.getenv("NAV_MAX_ATTEMPTS", "3")))
    # 固定退避间隔（秒），不做指数增长
    backoff_delay: float = Field(default_factory=lambda: float(os.getenv("NAV_BACKOFF_DELAY", "5.0")))
    # 命中即放弃重试的状态码，如 "404,410"；默认为空（所有状态码都重试）
    terminal_statuses: list[int] = Field(
        default_factory=lambda: _parse_statuses(os.getenv("NAV_TERMINAL_STATUSES", ""))
    )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_delay=self.backoff_delay,
            terminal_statuses=frozenset(self.terminal_statuses),
        )


class PaginationConfig(BaseModel):
    """分页配置"""

    # "加载更多" 最大点击次数
    max_load_more_clicks: int = Field(
        default_factory=lambda: int(os.getenv("MAX_LOAD_MORE_CLICKS", "50"))
    )
    # 偏移分页最大页数
    max_offset_pages: int = Field(default_factory=lambda: int(os.getenv("MAX_OFFSET_PAGES", "200")))
    # 点击后的等待方式: delay (固定等待) / networkidle (等待网络空闲)
    settle_mode: str = Field(default_factory=lambda: os.getenv("SETTLE_MODE", "delay"))
    settle_delay_ms: int = Field(default_factory=lambda: int(os.getenv("SETTLE_DELAY_MS", "2000")))
    settle_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("SETTLE_TIMEOUT_MS", "10000"))
    )


class CrawlerConfig(BaseModel):
    """爬取流程配置"""

    output_dir: str = Field(default_factory=lambda: os.getenv("OUTPUT_DIR", "output"))
    # 详情页并发数（每个 worker 使用独立页面），1 表示串行
    detail_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("DETAIL_CONCURRENCY", "1"))
    )
    # 详情页之间的间隔（秒）
    detail_delay: float = Field(default_factory=lambda: float(os.getenv("DETAIL_DELAY", "1.0")))
    detail_delay_random: float = Field(
        default_factory=lambda: float(os.getenv("DETAIL_DELAY_RANDOM", "0.5"))
    )
    # 整体运行超时（秒），0 表示不限制
    run_timeout_s: float = Field(default_factory=lambda: float(os.getenv("RUN_TIMEOUT_S", "0")))
    resume: bool = Field(default_factory=lambda: os.getenv("RESUME", "true").lower() == "true")
    # overwrite: 覆盖已有文件; skip_existing: 已存在则跳过
    write_mode: str = Field(default_factory=lambda: os.getenv("WRITE_MODE", "overwrite"))


class Config(BaseModel):
    """全局配置"""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)

    @classmethod
    def load(cls) -> "Config":
        """加载配置"""
        return cls()


@dataclass
class RunConfig:
    """单次运行的显式配置

    由 Orchestrator 在构造时持有，替代模块级常量。
    """

    output_dir: Path
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    nav_timeout_ms: int = 120000
    max_load_more_clicks: int = 50
    max_offset_pages: int = 200
    settle_mode: str = "delay"
    settle_delay_ms: int = 2000
    settle_timeout_ms: int = 10000
    detail_concurrency: int = 1
    detail_delay: float = 1.0
    detail_delay_random: float = 0.5
    run_timeout_s: float | None = None
    resume: bool = True
    write_mode: str = "overwrite"

    @classmethod
    def from_config(cls, cfg: Config | None = None, **overrides) -> "RunConfig":
        """由全局配置生成，overrides 中值为 None 的项忽略"""
        cfg = cfg or config
        values = {
            "output_dir": Path(cfg.crawler.output_dir),
            "retry_policy": cfg.retry.to_policy(),
            "nav_timeout_ms": cfg.browser.nav_timeout_ms,
            "max_load_more_clicks": cfg.pagination.max_load_more_clicks,
            "max_offset_pages": cfg.pagination.max_offset_pages,
            "settle_mode": cfg.pagination.settle_mode,
            "settle_delay_ms": cfg.pagination.settle_delay_ms,
            "settle_timeout_ms": cfg.pagination.settle_timeout_ms,
            "detail_concurrency": max(1, cfg.crawler.detail_concurrency),
            "detail_delay": cfg.crawler.detail_delay,
            "detail_delay_random": cfg.crawler.detail_delay_random,
            "run_timeout_s": cfg.crawler.run_timeout_s or None,
            "resume": cfg.crawler.resume,
            "write_mode": cfg.crawler.write_mode,
        }
        for key, value in overrides.items():
            if value is not None:
                values[key] = Path(value) if key == "output_dir" else value
        return cls(**values)


# 全局配置实例
config = Config.load()
