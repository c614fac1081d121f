"""输出写入器

把爬取节点映射到与站点分类一致的目录结构：

    OUTPUT_ROOT/<Category>/<Subcategory>/[<year>/]{page_<n>.json | item_<id>.html}

每个路径段都经过 sanitize_name 清洗；目录创建幂等；默认后写覆盖前写。
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from ..exceptions import StorageWriteError
from ..logger import get_logger
from ..types import Record
from .file_utils import ensure_directory, file_exists, save_file, save_json

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')

WRITE_MODES = ("overwrite", "skip_existing")


def sanitize_name(name: str) -> str:
    """把文件名中不允许出现的字符 <>:"/\\|?* 替换为下划线

    幂等：sanitize_name(sanitize_name(s)) == sanitize_name(s)
    """
    return _UNSAFE_CHARS.sub("_", name)


def safe_segment(name: str) -> str:
    """清洗后的单个路径段，空串与 . / .. 统一替换为下划线"""
    cleaned = sanitize_name(name.strip())
    if cleaned in ("", ".", ".."):
        return "_"
    return cleaned


class OutputWriter:
    """把记录与页面快照写入确定性的路径"""

    def __init__(self, output_dir: str | Path, write_mode: str = "overwrite"):
        if write_mode not in WRITE_MODES:
            raise ValueError(f"未知写入模式: {write_mode}")
        self.root = Path(output_dir)
        self.write_mode = write_mode
        ensure_directory(self.root)

    # ----- 路径推导 -----

    def node_dir(self, path: Iterable[str]) -> Path:
        return self.root.joinpath(*(safe_segment(part) for part in path))

    def listing_path(self, path: Iterable[str], marker: int) -> Path:
        return self.node_dir(path) / f"page_{marker}.json"

    def snapshot_path(self, path: Iterable[str], item_id: str) -> Path:
        return self.node_dir(path) / f"item_{safe_segment(item_id)}.html"

    def item_path(self, path: Iterable[str], item_id: str) -> Path:
        return self.node_dir(path) / f"item_{safe_segment(item_id)}.json"

    # ----- 写入 -----

    def write_listing(self, path: Iterable[str], marker: int, records: list[Record]) -> Path:
        """写入一页列表记录 page_<marker>.json"""
        target = self.listing_path(path, marker)
        self._write(target, [dict(record) for record in records])
        logger.info(f"[Output] 已保存 {len(records)} 条记录: {target}")
        return target

    def write_snapshot(self, path: Iterable[str], item_id: str, raw_content: str) -> Path:
        """写入详情页原始 HTML"""
        target = self.snapshot_path(path, item_id)
        self._write(target, raw_content)
        logger.debug(f"[Output] 已保存页面快照: {target}")
        return target

    def write_item(self, path: Iterable[str], item_id: str, record: Record) -> Path:
        """写入详情页抽取出的字段"""
        target = self.item_path(path, item_id)
        self._write(target, dict(record))
        return target

    def write_taxonomy(self, categories: list[dict[str, Any]]) -> Path:
        """写入分类结构快照 category.json"""
        target = self.root / "category.json"
        self._write(target, categories, force=True)
        logger.info(f"[Output] 分类结构已保存: {target}")
        return target

    def write_summary(self, summary: dict[str, Any]) -> Path:
        target = self.root / "run_summary.json"
        self._write(target, {**summary, "written_at": datetime.now().isoformat()}, force=True)
        return target

    def _write(self, target: Path, data: Any, force: bool = False) -> None:
        if not force and self.write_mode == "skip_existing" and file_exists(target):
            logger.debug(f"[Output] 文件已存在，跳过: {target}")
            return
        if not ensure_directory(target.parent):
            raise StorageWriteError(str(target.parent), "创建目录失败")
        ok = save_json(target, data) if isinstance(data, (dict, list)) else save_file(target, data)
        if not ok:
            raise StorageWriteError(str(target))
