"""日志

标准库 logging + RichHandler 输出到共享的 console；
--log-file 时为所有 treespider.* 日志器和 loguru 追加同一个文件。
"""

from __future__ import annotations

import logging
import os

from loguru import logger as loguru_logger
from rich.console import Console
from rich.logging import RichHandler


# CLI 面板与日志共用
console = Console()

PACKAGE = "treespider"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


def _env_level() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """获取带 RichHandler 的日志器，同名日志器只配置一次"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = _env_level()
    logger.setLevel(level)

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=os.getenv("LOG_SHOW_LOCALS", "false").lower() == "true",
        # 日志中含有 URL 与 [Tag] 前缀，不按 rich markup 解析
        markup=False,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def setup_package_file_logging(log_file: str, level: int = logging.DEBUG) -> int:
    """为所有已创建的 treespider.* 日志器追加文件输出

    浏览器引擎与文件工具使用 loguru，同时为其添加文件 sink。

    Args:
        log_file: 日志文件路径
        level: 文件日志级别

    Returns:
        loguru sink id
    """
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    for name in list(logging.root.manager.loggerDict):
        if name == PACKAGE or name.startswith(PACKAGE + "."):
            logger = logging.getLogger(name)
            if logger.handlers:
                logger.addHandler(file_handler)

    return loguru_logger.add(log_file, level=logging.getLevelName(level), encoding="utf-8")
