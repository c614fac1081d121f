"""站点配置（选择器与抽取规则）

站点相关的选择器属于配置数据而非引擎逻辑，统一放在 profiles/*.yaml 中，
加载时用 pydantic 校验。
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigFileNotFoundError, ConfigValidationError
from .utils.paths import get_profile_path

TRANSFORMS = ("strip", "strip_newlines", "collapse_whitespace", "absolute_url")


# ============================================================================
# 抽取规则
# ============================================================================


class ExtractionRule(BaseModel):
    """单个字段的抽取规则（运行期只读）"""

    name: str = Field(..., description="字段名")
    selector: str | None = Field(default=None, description="相对容器的选择器，为空表示容器本身")
    attribute: str | None = Field(
        default=None,
        description="读取的属性；为空读 textContent，innerText/innerHTML 为伪属性",
    )
    transforms: list[str] = Field(default_factory=lambda: ["strip"], description="取值后的变换")
    default: str | None = Field(default=None, description="缺失时的默认值")
    many: bool = Field(default=False, description="是否收集全部匹配并拼接")
    separator: str = Field(default="\n", description="many=True 时的拼接符")

    model_config = {"frozen": True}

    @field_validator("transforms")
    @classmethod
    def _known_transforms(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in TRANSFORMS]
        if unknown:
            raise ValueError(f"未知的变换: {unknown}，可选 {list(TRANSFORMS)}")
        return value


class LinkLevel(BaseModel):
    """分类层级：容器 + name/url 规则，可嵌套下一层"""

    container: str
    rules: list[ExtractionRule]
    children: LinkLevel | None = None

    @model_validator(mode="after")
    def _require_name_and_url(self) -> "LinkLevel":
        names = {rule.name for rule in self.rules}
        missing = {"name", "url"} - names
        if missing:
            raise ValueError(f"分类层级缺少规则: {sorted(missing)}")
        return self


# ============================================================================
# 遍历配置
# ============================================================================


class TaxonomyProfile(BaseModel):
    """根页面分类结构"""

    root_url: str
    categories: LinkLevel
    # 分类页本身是否也作为列表页爬取
    crawl_categories: bool = False


class ArchiveProfile(BaseModel):
    """按年份归档的列表入口"""

    url_template: str = Field(..., description="包含 {year} 占位符的列表 URL")
    start_year: int
    end_year: int | None = Field(default=None, description="为空时取去年")

    @field_validator("url_template")
    @classmethod
    def _has_year(cls, value: str) -> str:
        if "{year}" not in value:
            raise ValueError("url_template 必须包含 {year}")
        return value

    def years(self) -> list[int]:
        end = self.end_year if self.end_year is not None else date.today().year - 1
        return list(range(self.start_year, end + 1))


class PaginationStrategy(str, Enum):
    """分页策略"""

    OFFSET = "offset"
    LOAD_MORE = "load_more"


class ListingProfile(BaseModel):
    """列表页配置"""

    strategy: PaginationStrategy = PaginationStrategy.OFFSET
    container: str
    rules: list[ExtractionRule]
    # offset 策略
    offset_param: str = "start"
    first_offset: int = 1
    page_size: int = 20
    # load_more 策略
    load_more_selector: str | None = None
    # 详情页链接所在字段与条目 id 字段
    detail_url_field: str | None = None
    item_id_field: str | None = None

    @model_validator(mode="after")
    def _check_strategy(self) -> "ListingProfile":
        if self.strategy is PaginationStrategy.LOAD_MORE and not self.load_more_selector:
            raise ValueError("load_more 策略需要 load_more_selector")
        if self.page_size < 1:
            raise ValueError("page_size 必须 >= 1")
        names = {rule.name for rule in self.rules}
        for field_name in (self.detail_url_field, self.item_id_field):
            if field_name and field_name not in names:
                raise ValueError(f"字段 {field_name} 不在列表规则中")
        return self


class DetailProfile(BaseModel):
    """详情页配置"""

    rules: list[ExtractionRule] = Field(default_factory=list)
    save_snapshot: bool = True


class SiteProfile(BaseModel):
    """站点完整配置"""

    name: str
    taxonomy: TaxonomyProfile | None = None
    archive: ArchiveProfile | None = None
    listing: ListingProfile
    detail: DetailProfile | None = None

    @model_validator(mode="after")
    def _one_entry(self) -> "SiteProfile":
        if (self.taxonomy is None) == (self.archive is None):
            raise ValueError("taxonomy 与 archive 必须且只能配置一个")
        return self


# ============================================================================
# 加载
# ============================================================================


@lru_cache(maxsize=16)
def _load_yaml(file_path: str) -> dict:
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def resolve_profile_path(name_or_path: str) -> Path:
    """先按文件路径查找，再按 profiles/ 下的名称查找"""
    candidate = Path(name_or_path)
    if candidate.is_file():
        return candidate
    bundled = Path(get_profile_path(name_or_path))
    if bundled.is_file():
        return bundled
    raise ConfigFileNotFoundError(name_or_path)


def load_profile(name_or_path: str) -> SiteProfile:
    """加载并校验站点配置

    Raises:
        ConfigFileNotFoundError: 文件不存在
        ConfigValidationError: YAML 或字段校验失败
    """
    path = resolve_profile_path(name_or_path)
    try:
        data = _load_yaml(str(path.resolve()))
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"站点配置 YAML 解析失败: {path}: {e}") from e
    try:
        return SiteProfile.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"站点配置校验失败: {path}\n{e}") from e


def clear_profile_cache() -> None:
    """清除配置文件缓存"""
    _load_yaml.cache_clear()
