"""字段抽取模块 - 按规则把渲染后的页面转成记录

缺失字段永远回落到规则声明的 default，不会因此报错；
只有容器选择器完全没有匹配时才视为配置不符（仅警告）。
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError

from ..common.exceptions import ExtractionConfigMismatch
from ..common.logger import get_logger
from ..common.profile import ExtractionRule
from ..common.types import Record

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _apply_transform(name: str, value: str, base_url: str) -> str:
    if name == "strip":
        return value.strip()
    if name == "strip_newlines":
        return value.replace("\r", "").replace("\n", "")
    if name == "collapse_whitespace":
        return _WHITESPACE.sub(" ", value).strip()
    if name == "absolute_url":
        return urljoin(base_url, value) if base_url else value
    raise ValueError(f"未知的变换: {name}")


def records_fingerprint(records: Iterable[Record]) -> str:
    """记录集合的内容指纹，用于识别站点重复返回同一页"""
    payload = json.dumps(list(records), ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class ExtractionResult:
    """一次抽取的结果"""

    records: list[Record] = field(default_factory=list)
    container_matched: bool = True
    mismatch: ExtractionConfigMismatch | None = None


class ExtractionEngine:
    """抽取引擎"""

    async def extract(
        self,
        scope: Any,
        container_selector: str,
        rules: list[ExtractionRule],
        base_url: str = "",
        expect_match: bool = True,
    ) -> ExtractionResult:
        """
        对 scope（Page 或元素）中每个匹配 container_selector 的元素应用全部规则

        Args:
            scope: 提供 query_selector_all 的页面或元素
            container_selector: 容器选择器
            rules: 抽取规则
            base_url: 相对链接的基准 URL
            expect_match: 容器为零时是否视为配置不符并警告

        Returns:
            ExtractionResult；容器一个都没匹配时 records 为空
        """
        containers = await self.select(scope, container_selector)
        if not containers:
            if not expect_match:
                return ExtractionResult(container_matched=False)
            mismatch = ExtractionConfigMismatch(container_selector, base_url)
            logger.warning(f"[Extract] {mismatch}")
            return ExtractionResult(container_matched=False, mismatch=mismatch)

        records = [await self.extract_record(element, rules, base_url) for element in containers]
        return ExtractionResult(records=records)

    async def extract_document(self, page: "Page", rules: list[ExtractionRule]) -> Record:
        """以整个页面为容器抽取一条记录（详情页）"""
        return await self.extract_record(page, rules, page.url)

    async def select(self, scope: Any, selector: str) -> list["ElementHandle"]:
        try:
            return list(await scope.query_selector_all(selector))
        except PlaywrightError as e:
            logger.warning(f"[Extract] 选择器查询失败 {selector}: {e}")
            return []

    async def extract_record(self, element: Any, rules: list[ExtractionRule], base_url: str) -> Record:
        """对单个容器应用全部规则，字段顺序与规则顺序一致"""
        record: Record = {}
        for rule in rules:
            record[rule.name] = await self._apply_rule(element, rule, base_url)
        return record

    async def _apply_rule(self, element: Any, rule: ExtractionRule, base_url: str) -> str | None:
        try:
            if rule.selector is None:
                targets = [element]
            elif rule.many:
                targets = list(await element.query_selector_all(rule.selector))
            else:
                target = await element.query_selector(rule.selector)
                targets = [target] if target is not None else []

            values = []
            for target in targets:
                value = await self._read(target, rule.attribute)
                if value is None:
                    continue
                for name in rule.transforms:
                    value = _apply_transform(name, value, base_url)
                if value != "":
                    values.append(value)
        except PlaywrightError as e:
            # 元素在读取过程中被移除等情况，按缺失处理
            logger.debug(f"[Extract] 字段 {rule.name} 读取失败，使用默认值: {e}")
            return rule.default

        if not values:
            return rule.default
        return rule.separator.join(values) if rule.many else values[0]

    @staticmethod
    async def _read(target: Any, attribute: str | None) -> str | None:
        if attribute is None:
            return await target.text_content()
        if attribute == "innerText":
            return await target.inner_text()
        if attribute == "innerHTML":
            return await target.inner_html()
        return await target.get_attribute(attribute)
