"""存储模块 - 输出写入与断点持久化"""

from .checkpoint import CheckpointState, CheckpointStore
from .output_writer import OutputWriter, safe_segment, sanitize_name

__all__ = [
    "CheckpointState",
    "CheckpointStore",
    "OutputWriter",
    "safe_segment",
    "sanitize_name",
]
