"""自定义异常类

定义项目中使用的所有自定义异常，用于更精细的错误处理。
除 SetupError 外，所有异常都在 Orchestrator 层被捕获并转为节点失败状态。
"""

from __future__ import annotations


class TreeSpiderError(Exception):
    """TreeSpider 基础异常类

    所有自定义异常的基类。
    """
    pass


class NavigationError(TreeSpiderError):
    """导航失败的基类

    NavigationController 不抛出该异常，而是作为结果的一部分返回，
    由调用方决定它对整次运行还是单个节点是致命的。
    """
    def __init__(
        self,
        url: str,
        message: str = "页面加载失败",
        status: int | None = None,
        cause: BaseException | None = None,
        attempts: int = 0,
    ):
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status = status
        self.cause = cause
        self.attempts = attempts


class TransientNavigationFailure(NavigationError):
    """超时、传输错误或无响应"""
    def __init__(self, url: str, cause: BaseException | None = None, attempts: int = 0):
        reason = f"{type(cause).__name__}: {cause}" if cause else "无响应"
        super().__init__(url, f"导航失败（{reason}）", cause=cause, attempts=attempts)


class HttpStatusFailure(NavigationError):
    """状态码 >= 400

    默认可重试，只有 RetryPolicy 声明为终止状态时才立即放弃。
    """
    def __init__(self, url: str, status: int, attempts: int = 0):
        super().__init__(url, f"HTTP {status}", status=status, attempts=attempts)


class ExtractionError(TreeSpiderError):
    """抽取相关错误的基类"""
    pass


class ExtractionConfigMismatch(ExtractionError):
    """容器选择器一个元素都没有匹配到

    说明选择器配置与页面不符，仅记录警告，不影响节点完成。
    """
    def __init__(self, selector: str, url: str = ""):
        super().__init__(f"容器选择器未匹配任何元素: {selector} ({url})")
        self.selector = selector
        self.url = url


class PaginationError(TreeSpiderError):
    """分页处理错误"""
    pass


class PaginationBoundExceeded(PaginationError):
    """翻页 / 点击次数达到上限

    非致命：已收集的数据照常处理。
    """
    def __init__(self, url: str, limit: int, strategy: str):
        super().__init__(f"{strategy} 分页达到上限 {limit}: {url}")
        self.url = url
        self.limit = limit
        self.strategy = strategy


class StorageError(TreeSpiderError):
    """存储相关错误的基类"""
    pass


class StorageWriteError(StorageError):
    """写文件失败，对应节点标记为失败"""
    def __init__(self, path: str, message: str = "写入失败"):
        super().__init__(f"{message}: {path}")
        self.path = path


class SetupError(TreeSpiderError):
    """浏览器等外部依赖无法启动，整次运行终止"""
    pass


class ConfigError(TreeSpiderError):
    """配置相关错误"""
    pass


class ConfigFileNotFoundError(ConfigError):
    """配置文件未找到"""
    def __init__(self, path: str):
        super().__init__(f"配置文件未找到: {path}")
        self.path = path


class ConfigValidationError(ConfigError):
    """配置验证失败"""
    pass
