"""
通用文件/文件夹操作工具模块
为输出写入器与断点存储提供统一的文件系统操作接口

主要功能：
- 目录的幂等创建
- 文件的写入、读取、删除
- JSON 数据的保存和加载
- 原子替换写入（先写临时文件再替换）
"""

import json
import os
from pathlib import Path
from typing import Any, Union
from loguru import logger


# ==================== 目录操作 ====================

def ensure_directory(path: Union[str, Path]) -> bool:
    """
    确保目录存在，如果不存在则创建（已存在不视为错误）

    Args:
        path: 目录路径

    Returns:
        bool: 成功返回 True，失败返回 False

    Example:
        >>> ensure_directory("output/Electronics")
        True
    """
    try:
        p = Path(path)
        if not p.exists():
            p.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created directory: {p}")
        return True
    except OSError as e:
        logger.error(f"[FS_CREATE_ERROR] Failed to create directory {path}: {e}")
        return False


# ==================== 文件操作 ====================

def save_file(file_path: Union[str, Path], data: Any, encoding: str = "utf-8") -> bool:
    """
    保存数据到文件（智能识别类型）

    Args:
        file_path: 文件路径
        data: 要保存的数据
            - dict/list: 自动转为 JSON
            - bytes: 写入二进制
            - 其他: 转为字符串写入
        encoding: 文本编码（默认 utf-8）

    Returns:
        bool: 成功返回 True，失败返回 False
    """
    try:
        path = Path(file_path)

        # 自动创建父目录
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(data, bytes):
            with open(path, "wb") as f:
                f.write(data)
        elif isinstance(data, (dict, list)):
            with open(path, "w", encoding=encoding) as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        else:
            with open(path, "w", encoding=encoding) as f:
                f.write(str(data))

        logger.debug(f"Saved file: {path}")
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"[FS_SAVE_ERROR] Failed to save {file_path}: {e}")
        return False


def save_file_atomic(file_path: Union[str, Path], data: Any, encoding: str = "utf-8") -> bool:
    """
    原子写入：先写入同目录临时文件，再替换目标文件

    读取方永远不会看到写了一半的文件。
    """
    path = Path(file_path)
    tmp_path = path.with_name(f".{path.name}.tmp")
    if not save_file(tmp_path, data, encoding=encoding):
        return False
    try:
        os.replace(tmp_path, path)
        return True
    except OSError as e:
        logger.error(f"[FS_REPLACE_ERROR] Failed to replace {file_path}: {e}")
        return False


def load_file(
    file_path: Union[str, Path],
    as_json: bool = False,
    encoding: str = "utf-8"
) -> Union[str, dict, list, None]:
    """
    读取文件数据

    Args:
        file_path: 文件路径
        as_json: 是否解析为 JSON
        encoding: 文本编码（默认 utf-8）

    Returns:
        文件内容，失败返回 None
    """
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"[FS_READ_WARN] File not found: {file_path}")
        return None

    try:
        with open(path, "r", encoding=encoding) as f:
            if as_json:
                return json.load(f)
            return f.read()
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"[FS_READ_ERROR] Failed to read {file_path}: {e}")
        return None


def remove_file(file_path: Union[str, Path]) -> bool:
    """
    删除文件

    Returns:
        bool: 成功返回 True，文件不存在或失败返回 False
    """
    try:
        p = Path(file_path)
        if not p.exists():
            return False
        p.unlink()
        logger.debug(f"Removed file: {p}")
        return True
    except OSError as e:
        logger.error(f"[FS_REMOVE_ERROR] Failed to remove file {file_path}: {e}")
        return False


def file_exists(file_path: Union[str, Path]) -> bool:
    """检查文件是否存在"""
    return Path(file_path).is_file()


# ==================== JSON 操作 ====================

def save_json(file_path: Union[str, Path], data: Union[dict, list]) -> bool:
    """
    保存 JSON 数据到文件

    Args:
        file_path: 文件路径
        data: 要保存的数据（dict 或 list）

    Returns:
        bool: 成功返回 True，失败返回 False
    """
    return save_file(file_path, data)


def load_json(file_path: Union[str, Path]) -> Union[dict, list, None]:
    """
    从文件加载 JSON 数据

    Returns:
        dict/list: JSON 数据，失败返回 None
    """
    return load_file(file_path, as_json=True)


__all__ = [
    "ensure_directory",
    "save_file",
    "save_file_atomic",
    "load_file",
    "remove_file",
    "file_exists",
    "save_json",
    "load_json",
]
