"""分页解析器单元测试"""

import pytest

from treespider.common.profile import ListingProfile
from treespider.common.types import RetryPolicy
from treespider.common.exceptions import NavigationError
from treespider.crawler.extraction import ExtractionEngine
from treespider.crawler.navigation import NavigationController
from treespider.crawler.pagination import (
    LoadMorePaginator,
    OffsetPaginator,
    build_offset_url,
    create_paginator,
)

LIST_URL = "https://shop.test/c2/Laptops/"
POLICY = RetryPolicy(max_attempts=2, backoff_delay=0.0)


def offset_listing(page_size: int = 20) -> ListingProfile:
    return ListingProfile.model_validate({
        "strategy": "offset",
        "container": "div.card",
        "offset_param": "start",
        "first_offset": 1,
        "page_size": page_size,
        "rules": [{"name": "sku", "selector": ".sku"}],
    })


def load_more_listing() -> ListingProfile:
    return ListingProfile.model_validate({
        "strategy": "load_more",
        "container": "div.card",
        "load_more_selector": "a.more",
        "rules": [{"name": "sku", "selector": ".sku"}],
    })


def offset_paginator(page, listing: ListingProfile, max_pages: int = 200) -> OffsetPaginator:
    return create_paginator(
        page, LIST_URL, listing, NavigationController(), ExtractionEngine(), POLICY,
        max_offset_pages=max_pages,
    )


async def collect(paginator):
    return [batch async for batch in paginator.batches()]


class TestBuildOffsetUrl:
    """偏移 URL 构造测试"""

    def test_appends_param(self):
        assert build_offset_url(LIST_URL, "start", 21) == "https://shop.test/c2/Laptops/?start=21"

    def test_keeps_other_params(self):
        url = build_offset_url("https://shop.test/list?sort=new&start=1", "start", 41)
        assert url == "https://shop.test/list?sort=new&start=41"


class TestOffsetPaginator:
    """偏移分页测试"""

    @pytest.mark.asyncio
    async def test_45_items_page_size_20(self, fake_page, builders):
        """45 条、每页 20：访问 1/21/41/61 共 4 次，合计 45 条"""
        skus = [f"s{i}" for i in range(45)]
        page = fake_page({
            f"{LIST_URL}?start=1": builders.listing(skus[0:20]),
            f"{LIST_URL}?start=21": builders.listing(skus[20:40]),
            f"{LIST_URL}?start=41": builders.listing(skus[40:45]),
            f"{LIST_URL}?start=61": builders.listing([]),
        })
        paginator = offset_paginator(page, offset_listing())

        batches = await collect(paginator)

        assert isinstance(paginator, OffsetPaginator)
        assert len(page.visits) == 4
        assert [batch.marker for batch in batches if batch.records] == [1, 21, 41]
        assert sum(len(batch.records) for batch in batches) == 45
        assert batches[-1].stop_reason == "empty"
        assert batches[-1].done

    @pytest.mark.asyncio
    async def test_repeated_page_stops(self, fake_page, builders):
        """站点忽略偏移参数：相同内容不重复产出"""
        page = fake_page({
            f"{LIST_URL}?start=1": builders.listing(["a", "b"]),
            f"{LIST_URL}?start=3": builders.listing(["a", "b"]),
        })

        batches = await collect(offset_paginator(page, offset_listing(page_size=2)))

        assert sum(len(batch.records) for batch in batches) == 2
        assert batches[-1].stop_reason == "repeated"
        assert len(page.visits) == 2

    @pytest.mark.asyncio
    async def test_bound_exceeded(self, fake_page, builders):
        """站点永不返回空页：达到 max_steps 后停止并标记越界"""
        routes = {
            f"{LIST_URL}?start={offset}": builders.listing([f"s{offset}"])
            for offset in range(1, 100)
        }
        page = fake_page(routes)

        batches = await collect(offset_paginator(page, offset_listing(page_size=1), max_pages=5))

        assert len(page.visits) == 5
        assert len(batches) == 5
        assert batches[-1].bound_exceeded
        assert sum(len(batch.records) for batch in batches) == 5

    @pytest.mark.asyncio
    async def test_first_page_failure_raises(self, fake_page):
        page = fake_page({f"{LIST_URL}?start=1": 500})

        with pytest.raises(NavigationError):
            await collect(offset_paginator(page, offset_listing()))

    @pytest.mark.asyncio
    async def test_later_page_failure_keeps_earlier_records(self, fake_page, builders):
        page = fake_page({
            f"{LIST_URL}?start=1": builders.listing(["a", "b"]),
            f"{LIST_URL}?start=3": 503,
        })

        batches = await collect(offset_paginator(page, offset_listing(page_size=2)))

        assert [len(batch.records) for batch in batches] == [2, 0]
        assert batches[-1].stop_reason == "navigation_failed"


class TestLoadMorePaginator:
    """加载更多分页测试"""

    def build_page(self, fake_page, fake_element, builders, clicks_available: int, per_click: int = 3):
        document = fake_element(children={"div.card": [builders.card(f"s{i}") for i in range(per_click)]})

        def load_more():
            start = len(document.children["div.card"])
            document.children["div.card"].extend(builders.card(f"s{start + i}") for i in range(per_click))
            if button.clicks >= clicks_available:
                document.children["a.more"] = []

        button = fake_element(text="Load More", on_click=load_more)
        document.children["a.more"] = [button] if clicks_available > 0 else []
        return fake_page({LIST_URL: document}), button

    @pytest.mark.asyncio
    async def test_five_clicks_then_single_extraction(self, fake_page, fake_element, builders):
        """按钮出现 5 次后消失：恰好点击 5 次，之后一次抽取覆盖全部"""
        page, button = self.build_page(fake_page, fake_element, builders, clicks_available=5)
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
            settle_delay_ms=0,
        )

        batches = await collect(paginator)

        assert isinstance(paginator, LoadMorePaginator)
        assert button.clicks == 5
        assert len(batches) == 1
        assert batches[0].marker == 1
        assert batches[0].clicks == 5
        assert len(batches[0].records) == 18
        assert not batches[0].bound_exceeded
        assert page.waits == [0] * 5

    @pytest.mark.asyncio
    async def test_click_bound(self, fake_page, fake_element, builders):
        """按钮永不消失：点击达到上限后照常抽取"""
        page, button = self.build_page(fake_page, fake_element, builders, clicks_available=10_000, per_click=1)
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
            max_load_more_clicks=4, settle_delay_ms=0,
        )

        batches = await collect(paginator)

        assert button.clicks == 4
        assert batches[0].bound_exceeded
        assert len(batches[0].records) == 5

    @pytest.mark.asyncio
    async def test_invisible_button_not_clicked(self, fake_page, fake_element, builders):
        page, button = self.build_page(fake_page, fake_element, builders, clicks_available=3)
        button.visible = False
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
        )

        batches = await collect(paginator)

        assert button.clicks == 0
        assert len(batches[0].records) == 3

    @pytest.mark.asyncio
    async def test_click_error_stops(self, fake_page, fake_element, builders):
        page, button = self.build_page(fake_page, fake_element, builders, clicks_available=3)
        button.click_error = True
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
        )

        batches = await collect(paginator)

        assert batches[0].clicks == 0
        assert len(batches[0].records) == 3

    @pytest.mark.asyncio
    async def test_networkidle_settle(self, fake_page, fake_element, builders):
        page, _ = self.build_page(fake_page, fake_element, builders, clicks_available=2)
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
            settle_mode="networkidle",
        )

        await collect(paginator)

        assert page.load_states == ["networkidle", "networkidle"]
        assert page.waits == []

    @pytest.mark.asyncio
    async def test_navigation_failure_raises(self, fake_page):
        page = fake_page({LIST_URL: 500})
        paginator = create_paginator(
            page, LIST_URL, load_more_listing(), NavigationController(), ExtractionEngine(), POLICY,
        )

        with pytest.raises(NavigationError):
            await collect(paginator)
