"""断点持久化

checkpoint.json 记录：
- completed: 已完整处理的节点 id（其记录与子节点都已落盘 / 入队之后才写入）
- pending: 尚未处理的前沿节点，重启后继续
- failed: 失败节点及原因，重启后重试
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from ..exceptions import StorageWriteError
from ..logger import get_logger
from ..types import CrawlNode
from .file_utils import ensure_directory, file_exists, load_json, remove_file, save_file_atomic

logger = get_logger(__name__)


@dataclass
class CheckpointState:
    """断点内容"""

    completed: set[str] = field(default_factory=set)
    pending: list[CrawlNode] = field(default_factory=list)
    failed: dict[str, tuple[CrawlNode, str]] = field(default_factory=dict)
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "completed": sorted(self.completed),
            "pending": [node.to_dict() for node in self.pending],
            "failed": [
                {"node": node.to_dict(), "reason": reason}
                for node, reason in self.failed.values()
            ],
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointState":
        """从字典创建"""
        failed: dict[str, tuple[CrawlNode, str]] = {}
        for entry in data.get("failed", []):
            node = CrawlNode.from_dict(entry["node"])
            failed[node.id] = (node, entry.get("reason", ""))
        return cls(
            completed=set(data.get("completed", [])),
            pending=[CrawlNode.from_dict(item) for item in data.get("pending", [])],
            failed=failed,
            last_updated=data.get("last_updated", ""),
        )


class CheckpointStore:
    """断点持久化管理器"""

    def __init__(self, output_dir: str | Path = "output", filename: str = "checkpoint.json"):
        """初始化

        Args:
            output_dir: 输出目录
            filename: 断点文件名
        """
        self.output_dir = Path(output_dir)
        ensure_directory(self.output_dir)
        self.checkpoint_file = self.output_dir / filename

    def save(
        self,
        completed: Iterable[str],
        pending: Iterable[CrawlNode] = (),
        failed: dict[str, tuple[CrawlNode, str]] | None = None,
    ) -> CheckpointState:
        """保存断点（原子替换）"""
        state = CheckpointState(
            completed=set(completed),
            pending=list(pending),
            failed=dict(failed or {}),
            last_updated=datetime.now().isoformat(),
        )
        if not save_file_atomic(self.checkpoint_file, state.to_dict()):
            raise StorageWriteError(str(self.checkpoint_file), "断点保存失败")
        return state

    def load(self) -> CheckpointState:
        """加载断点，文件不存在或损坏时返回空断点"""
        if not file_exists(self.checkpoint_file):
            return CheckpointState()

        data = load_json(self.checkpoint_file)
        if not isinstance(data, dict):
            logger.warning(f"[Checkpoint] 断点文件无法解析，忽略: {self.checkpoint_file}")
            return CheckpointState()
        try:
            return CheckpointState.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[Checkpoint] 断点内容无效，忽略: {e}")
            return CheckpointState()

    def has_checkpoint(self) -> bool:
        """检查是否存在断点"""
        return file_exists(self.checkpoint_file)

    def clear(self) -> None:
        """清除断点"""
        remove_file(self.checkpoint_file)
