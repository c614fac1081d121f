"""Common模块 - 公共工具和基础设施

该模块提供：
- 全局配置管理
- 站点配置（选择器与抽取规则）
- 浏览器引擎与会话
- 输出写入与断点持久化
- 类型定义
- 日志系统
- 异常类
"""

from .config import config, Config, RunConfig
from .logger import get_logger, console
from .exceptions import (
    TreeSpiderError,
    NavigationError,
    TransientNavigationFailure,
    HttpStatusFailure,
    ExtractionConfigMismatch,
    PaginationBoundExceeded,
    StorageWriteError,
    SetupError,
    ConfigError,
)
from .types import CrawlNode, NodeKind, NodeStatus, Record, RetryPolicy

__all__ = [
    # 配置
    "config",
    "Config",
    "RunConfig",
    # 日志
    "get_logger",
    "console",
    # 异常
    "TreeSpiderError",
    "NavigationError",
    "TransientNavigationFailure",
    "HttpStatusFailure",
    "ExtractionConfigMismatch",
    "PaginationBoundExceeded",
    "StorageWriteError",
    "SetupError",
    "ConfigError",
    # 类型
    "CrawlNode",
    "NodeKind",
    "NodeStatus",
    "Record",
    "RetryPolicy",
]
