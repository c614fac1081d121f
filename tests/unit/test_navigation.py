"""导航控制器单元测试"""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from treespider.common.exceptions import HttpStatusFailure, TransientNavigationFailure
from treespider.common.types import RetryPolicy
from treespider.crawler.navigation import NavigationController

URL = "https://shop.test/list"


class TestNavigate:
    """navigate 重试行为测试"""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, fake_page, fake_element, sleeper):
        page = fake_page({URL: fake_element()})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=3, backoff_delay=5.0))

        assert result.ok
        assert result.status == 200
        assert result.attempts == 1
        assert page.visits == [URL]
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_timeout_then_success(self, fake_page, fake_element, sleeper):
        """第一次超时，第二次成功：goto 调用两次，中间退避一次"""
        page = fake_page({URL: [PlaywrightError("Timeout 120000ms exceeded"), fake_element()]})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=3, backoff_delay=5.0))

        assert result.ok
        assert result.attempts == 2
        assert len(page.visits) == 2
        assert sleeper.calls == [5.0]

    @pytest.mark.asyncio
    async def test_exhausts_attempts(self, fake_page, sleeper):
        """始终失败：恰好 max_attempts 次，最后一次之后不再等待"""
        page = fake_page({URL: PlaywrightError("net::ERR_CONNECTION_RESET")})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=3, backoff_delay=5.0))

        assert not result.ok
        assert isinstance(result.error, TransientNavigationFailure)
        assert result.attempts == 3
        assert len(page.visits) == 3
        assert sleeper.calls == [5.0, 5.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [asyncio.TimeoutError(), ConnectionResetError("connection reset by peer")])
    async def test_non_playwright_errors_become_failures(self, fake_page, sleeper, error):
        """goto 抛出的超时与连接错误同样计为一次失败，不向外抛出"""
        page = fake_page({URL: error})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=2, backoff_delay=1.0))

        assert not result.ok
        assert isinstance(result.error, TransientNavigationFailure)
        assert result.attempts == 2
        assert sleeper.calls == [1.0]

    @pytest.mark.asyncio
    async def test_http_status_is_retried(self, fake_page, fake_element, sleeper):
        page = fake_page({URL: [503, fake_element()]})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=3, backoff_delay=1.0))

        assert result.ok
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_http_status_failure_carries_status(self, fake_page, sleeper):
        page = fake_page({URL: 500})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=2, backoff_delay=0.0))

        assert isinstance(result.error, HttpStatusFailure)
        assert result.status == 500
        assert result.error.status == 500
        assert result.error.attempts == 2

    @pytest.mark.asyncio
    async def test_terminal_status_stops_immediately(self, fake_page, sleeper):
        """终止状态码不再重试"""
        page = fake_page({URL: 404})
        controller = NavigationController(sleep=sleeper)
        policy = RetryPolicy(max_attempts=3, backoff_delay=5.0, terminal_statuses=frozenset({404}))

        result = await controller.navigate(page, URL, policy)

        assert not result.ok
        assert result.attempts == 1
        assert len(page.visits) == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_missing_response_is_failure(self, fake_page, sleeper):
        page = fake_page({URL: None})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=1, backoff_delay=0.0))

        assert isinstance(result.error, TransientNavigationFailure)
        assert result.attempts == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("succeed_on, max_attempts", [(1, 3), (2, 3), (3, 3), (5, 3), (2, 1)])
    async def test_attempt_count(self, fake_page, fake_element, sleeper, succeed_on, max_attempts):
        """goto 调用次数 = min(成功所需次数, max_attempts)"""
        outcomes = [PlaywrightError("timeout")] * (succeed_on - 1) + [fake_element()]
        page = fake_page({URL: outcomes})
        controller = NavigationController(sleep=sleeper)

        result = await controller.navigate(page, URL, RetryPolicy(max_attempts=max_attempts, backoff_delay=0.0))

        assert len(page.visits) == min(succeed_on, max_attempts)
        assert result.ok == (succeed_on <= max_attempts)
