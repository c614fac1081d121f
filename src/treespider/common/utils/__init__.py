"""工具函数"""

from .delay import get_random_delay
from .paths import get_profile_path, get_repo_root

__all__ = [
    "get_random_delay",
    "get_profile_path",
    "get_repo_root",
]
