"""pytest 全局配置和 fixtures

提供测试所需的基础设施和 Mock 对象：用内存中的元素树模拟 Playwright 的
Page / ElementHandle，覆盖引擎实际用到的那一小部分接口。
"""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from playwright.async_api import Error as PlaywrightError  # noqa: E402

from treespider.common.config import RunConfig  # noqa: E402
from treespider.common.profile import SiteProfile  # noqa: E402
from treespider.common.types import RetryPolicy  # noqa: E402


# ============================================================================
# Playwright 模拟对象
# ============================================================================


class FakeResponse:
    """模拟 Response，只有 status"""

    def __init__(self, status: int = 200):
        self.status = status


class FakeElement:
    """模拟 ElementHandle

    children: 选择器 -> 子元素列表，query_selector 取第一个
    """

    def __init__(
        self,
        text: str | None = None,
        attrs: dict[str, str] | None = None,
        html: str | None = None,
        children: dict[str, list["FakeElement"]] | None = None,
        visible: bool = True,
        on_click: Callable[[], None] | None = None,
        click_error: bool = False,
        read_error: bool = False,
    ):
        self.text = text
        self.attrs = attrs or {}
        self.html = html if html is not None else (text or "")
        self.children = children or {}
        self.visible = visible
        self.on_click = on_click
        self.click_error = click_error
        self.read_error = read_error
        self.clicks = 0

    async def text_content(self) -> str | None:
        if self.read_error:
            raise PlaywrightError("Element is not attached to the DOM")
        return self.text

    async def inner_text(self) -> str:
        return self.text or ""

    async def inner_html(self) -> str:
        return self.html

    async def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    async def is_visible(self) -> bool:
        return self.visible

    async def click(self) -> None:
        if self.click_error:
            raise PlaywrightError("Element is outside of the viewport")
        self.clicks += 1
        if self.on_click:
            self.on_click()

    async def query_selector_all(self, selector: str) -> list["FakeElement"]:
        return list(self.children.get(selector, []))

    async def query_selector(self, selector: str) -> "FakeElement | None":
        matches = self.children.get(selector) or []
        return matches[0] if matches else None


class FakePage:
    """模拟 Page

    routes: URL -> 结果。结果可以是
    - FakeElement: 作为文档根，返回 200
    - int: 只返回该状态码
    - None: goto 返回 None（无响应）
    - Exception: goto 抛出
    - list: 按尝试次数依次取用，最后一个重复使用
    未登记的 URL 返回 404。
    """

    def __init__(self, routes: dict[str, Any] | None = None):
        self.routes = routes or {}
        self.url = "about:blank"
        self.document = FakeElement()
        self.visits: list[str] = []
        self.waits: list[int] = []
        self.load_states: list[str] = []

    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None):
        self.visits.append(url)
        outcome = self.routes.get(url, 404)
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return None
        if isinstance(outcome, int):
            return FakeResponse(outcome)
        self.url = url
        self.document = outcome
        return FakeResponse(200)

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return await self.document.query_selector_all(selector)

    async def query_selector(self, selector: str) -> FakeElement | None:
        return await self.document.query_selector(selector)

    async def content(self) -> str:
        return f"<html>{self.document.html}</html>"

    async def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    async def wait_for_load_state(self, state: str, timeout: int | None = None) -> None:
        self.load_states.append(state)


class SleepRecorder:
    """替代 asyncio.sleep，只记录时长"""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_element():
    """FakeElement 构造器"""
    return FakeElement


@pytest.fixture
def fake_page():
    """FakePage 构造器"""
    return FakePage


@pytest.fixture
def sleeper():
    return SleepRecorder()


# ============================================================================
# 配置 Fixtures
# ============================================================================


@pytest.fixture
def fast_policy():
    """不等待的重试策略"""
    return RetryPolicy(max_attempts=3, backoff_delay=0.0)


@pytest.fixture
def run_config(temp_output_dir, fast_policy):
    """测试用运行配置：无等待、无超时"""
    return RunConfig(
        output_dir=temp_output_dir,
        retry_policy=fast_policy,
        settle_delay_ms=0,
        detail_delay=0.0,
        detail_delay_random=0.0,
        run_timeout_s=None,
        resume=True,
    )


LISTING_RULES = [
    {"name": "title", "selector": "a.title-link"},
    {"name": "link", "selector": "a.title-link", "attribute": "href", "transforms": ["strip", "absolute_url"]},
    {"name": "sku", "selector": ".sku"},
    {"name": "price", "selector": ".price", "default": "no price"},
]

DETAIL_RULES = [
    {"name": "name", "selector": "h1.product-title", "default": "No Product Name"},
    {"name": "price", "selector": "div.callout", "default": "no price"},
]


@pytest.fixture
def taxonomy_profile():
    """分类模式站点配置（offset 分页，每页 2 条）"""
    return SiteProfile.model_validate({
        "name": "shop",
        "taxonomy": {
            "root_url": "https://shop.test/categories/",
            "categories": {
                "container": ".unit-wrapper",
                "rules": [
                    {"name": "name", "selector": "h2 a", "default": "Unknown"},
                    {"name": "url", "selector": "h2 a", "attribute": "href", "transforms": ["strip", "absolute_url"]},
                ],
                "children": {
                    "container": ".category a",
                    "rules": [
                        {"name": "name"},
                        {"name": "url", "attribute": "href", "transforms": ["strip", "absolute_url"]},
                    ],
                },
            },
        },
        "listing": {
            "strategy": "offset",
            "container": "div.card",
            "offset_param": "start",
            "first_offset": 1,
            "page_size": 2,
            "rules": LISTING_RULES,
            "detail_url_field": "link",
            "item_id_field": "sku",
        },
        "detail": {"rules": DETAIL_RULES},
    })


@pytest.fixture
def archive_profile():
    """年份归档站点配置"""
    return SiteProfile.model_validate({
        "name": "archive",
        "archive": {
            "url_template": "https://shop.test/archives/{year}/",
            "start_year": 2020,
            "end_year": 2022,
        },
        "listing": {
            "container": "div.card",
            "offset_param": "page",
            "first_offset": 1,
            "page_size": 50,
            "rules": LISTING_RULES,
        },
    })


# ============================================================================
# 站点构造
# ============================================================================


def make_card(sku: str, title: str | None = None, price: str | None = None) -> FakeElement:
    children = {
        "a.title-link": [FakeElement(text=f"  {title or 'Item ' + sku}  ", attrs={"href": f"/item/{sku}"})],
        ".sku": [FakeElement(text=sku)],
    }
    if price is not None:
        children[".price"] = [FakeElement(text=price)]
    return FakeElement(children=children)


def make_listing(skus: list[str]) -> FakeElement:
    return FakeElement(children={"div.card": [make_card(sku) for sku in skus]})


def make_detail(sku: str) -> FakeElement:
    return FakeElement(
        html=f"<h1>Product {sku}</h1>",
        children={
            "h1.product-title": [FakeElement(text=f" Product {sku} ")],
            "div.callout": [FakeElement(text="$10")],
        },
    )


def make_link(name: str, href: str) -> FakeElement:
    return FakeElement(text=name, attrs={"href": href})


def make_taxonomy(categories: list[tuple[str, str, list[tuple[str, str]]]]) -> FakeElement:
    wrappers = []
    for name, href, subs in categories:
        wrappers.append(FakeElement(children={
            "h2 a": [make_link(name, href)],
            ".category a": [make_link(sub_name, sub_href) for sub_name, sub_href in subs],
        }))
    return FakeElement(children={".unit-wrapper": wrappers})


@pytest.fixture
def shop_routes():
    """构造一个小站点的路由表

    Electronics
      ├─ Laptops: a1 a2 | a3 | 空
      └─ Phones:  p1 | 空
    Home
      └─ Kitchen: HTTP 500（所有尝试都失败）
    """

    def build() -> dict[str, Any]:
        routes: dict[str, Any] = {
            "https://shop.test/categories/": make_taxonomy([
                ("Electronics", "/c1/Electronics/", [
                    ("Laptops", "/c2/Laptops/"),
                    ("Phones", "/c3/Phones/"),
                ]),
                ("Home", "/c4/Home/", [
                    ("Kitchen", "/c5/Kitchen/"),
                ]),
            ]),
            "https://shop.test/c2/Laptops/?start=1": make_listing(["a1", "a2"]),
            "https://shop.test/c2/Laptops/?start=3": make_listing(["a3"]),
            "https://shop.test/c2/Laptops/?start=5": make_listing([]),
            "https://shop.test/c3/Phones/?start=1": make_listing(["p1"]),
            "https://shop.test/c3/Phones/?start=3": make_listing([]),
            "https://shop.test/c5/Kitchen/?start=1": 500,
        }
        for sku in ("a1", "a2", "a3", "p1"):
            routes[f"https://shop.test/item/{sku}"] = make_detail(sku)
        return routes

    return build


# ============================================================================
# 临时目录 Fixture
# ============================================================================

@pytest.fixture
def temp_output_dir(tmp_path):
    """创建临时输出目录"""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def builders():
    """页面构造函数集合"""
    return SimpleNamespace(
        card=make_card,
        listing=make_listing,
        detail=make_detail,
        link=make_link,
        taxonomy=make_taxonomy,
    )
