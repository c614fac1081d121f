"""核心数据类型定义"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import ConfigValidationError

# 字段名 -> 字符串值（缺失为 None），按规则顺序排列
Record = dict[str, str | None]


# ============================================================================
# 节点
# ============================================================================


class NodeKind(str, Enum):
    """节点类型枚举"""

    ROOT = "root"
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    LISTING_PAGE = "listing_page"
    DETAIL_ITEM = "detail_item"

    @property
    def is_listing(self) -> bool:
        return self in (NodeKind.CATEGORY, NodeKind.SUBCATEGORY, NodeKind.LISTING_PAGE)


class NodeStatus(str, Enum):
    """节点状态枚举"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


ROOT_NODE_ID = "root"


def make_node_id(kind: NodeKind, url: str, path: tuple[str, ...] = ()) -> str:
    """由节点类型、URL 与路径生成确定性的 id，重启后可识别同一节点"""
    raw = f"{kind.value}|{url}|{'/'.join(path)}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class CrawlNode:
    """一次遍历的工作单元

    创建后不可变；parent_id 仅用于查找，不持有父节点引用。
    path 保存原始的层级名称，写盘时再逐段清洗。
    """

    id: str
    kind: NodeKind
    url: str
    parent_id: str | None = None
    path: tuple[str, ...] = ()
    label: str = ""
    item_id: str | None = None
    pagination_cursor: int | None = None

    @classmethod
    def root(cls, url: str = "") -> "CrawlNode":
        return cls(id=ROOT_NODE_ID, kind=NodeKind.ROOT, url=url, label="root")

    @classmethod
    def child(
        cls,
        parent: "CrawlNode",
        kind: NodeKind,
        url: str,
        path: tuple[str, ...],
        label: str = "",
        item_id: str | None = None,
    ) -> "CrawlNode":
        return cls(
            id=make_node_id(kind, url, path),
            kind=kind,
            url=url,
            parent_id=parent.id,
            path=path,
            label=label,
            item_id=item_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "url": self.url,
            "parent_id": self.parent_id,
            "path": list(self.path),
            "label": self.label,
            "item_id": self.item_id,
            "pagination_cursor": self.pagination_cursor,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlNode":
        """从字典创建"""
        return cls(
            id=data["id"],
            kind=NodeKind(data["kind"]),
            url=data.get("url", ""),
            parent_id=data.get("parent_id"),
            path=tuple(data.get("path", [])),
            label=data.get("label", ""),
            item_id=data.get("item_id"),
            pagination_cursor=data.get("pagination_cursor"),
        )


# ============================================================================
# 重试策略
# ============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """导航重试策略（只读，所有导航共享）"""

    max_attempts: int = 3
    backoff_delay: float = 5.0
    terminal_statuses: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigValidationError(f"max_attempts 必须 >= 1，当前为 {self.max_attempts}")
        if self.backoff_delay < 0:
            raise ConfigValidationError(f"backoff_delay 不能为负数，当前为 {self.backoff_delay}")

    def is_terminal_failure(self, status: int | None) -> bool:
        """该状态码是否应立即放弃重试"""
        return status is not None and status in self.terminal_statuses
