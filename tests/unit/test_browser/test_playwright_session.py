"""Unit tests for the Playwright session boundary.

Playwright objects are replaced by mocks; no browser is started.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

pytest_plugins = ('pytest_asyncio',)

from doonop.browser import (
    PlaywrightSession,
    PlaywrightSessionFactory,
    classify_error,
    proxy_options,
    wrap_script,
)
from doonop.config import CrawlConfig, parse_proxy
from doonop.errors import CrawlFailure, FailureKind, SessionError
from doonop.models import NO_ARTIFACT, Extracted


class TestClassifyError:
    """Tests for classify_error."""

    def test_timeouts_are_transient(self):
        assert classify_error(PlaywrightTimeoutError("Timeout 10000ms exceeded")) is FailureKind.TRANSIENT
        assert classify_error(asyncio.TimeoutError()) is FailureKind.TRANSIENT

    @pytest.mark.parametrize("message", [
        "net::ERR_NAME_NOT_RESOLVED at https://nope.invalid/",
        "net::ERR_CONNECTION_REFUSED at http://localhost:1/",
        "NS_ERROR_UNKNOWN_HOST",
        "Protocol error (Page.navigate): Cannot navigate to invalid URL",
    ])
    def test_permanent(self, message):
        assert classify_error(PlaywrightError(message)) is FailureKind.PERMANENT

    @pytest.mark.parametrize("message", [
        "Target page, context or browser has been closed",
        "Browser has been closed",
        "Connection closed",
    ])
    def test_fatal(self, message):
        assert classify_error(PlaywrightError(message)) is FailureKind.FATAL

    def test_unknown_errors_are_transient(self):
        assert classify_error(PlaywrightError("net::ERR_CONNECTION_RESET")) is FailureKind.TRANSIENT


class TestPlaywrightSession:
    """Tests for PlaywrightSession."""

    @pytest.fixture
    def page(self):
        page = MagicMock()
        page.url = "https://a.com/"
        page.goto = AsyncMock()
        page.evaluate = AsyncMock(return_value="https://a.com/")
        page.eval_on_selector_all = AsyncMock(return_value=["https://a.com/x", "", "https://b.com/"])
        return page

    @pytest.fixture
    def context(self):
        context = MagicMock()
        context.close = AsyncMock()
        return context

    @pytest.fixture
    def session(self, context, page):
        return PlaywrightSession(context, page)

    def test_wrap_script(self):
        assert wrap_script("return 1") == "async () => {\nreturn 1\n}"

    @pytest.mark.asyncio
    async def test_navigate(self, session, page):
        await session.navigate("https://a.com/", 2.5)

        page.goto.assert_awaited_once_with("https://a.com/", timeout=2500, wait_until="load")

    @pytest.mark.asyncio
    async def test_navigate_timeout(self, session, page):
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 2500ms exceeded")

        with pytest.raises(CrawlFailure) as exc_info:
            await session.navigate("https://a.com/", 2.5)

        assert exc_info.value.kind is FailureKind.TRANSIENT
        assert exc_info.value.url == "https://a.com/"

    @pytest.mark.asyncio
    async def test_navigate_dns_failure(self, session, page):
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(CrawlFailure) as exc_info:
            await session.navigate("https://nope.invalid/", 1.0)

        assert exc_info.value.kind is FailureKind.PERMANENT

    @pytest.mark.asyncio
    async def test_run_script_value(self, session, page):
        result = await session.run_script("return window.location.href", 1.0)

        assert result == Extracted("https://a.com/")
        page.evaluate.assert_awaited_once_with(wrap_script("return window.location.href"))

    @pytest.mark.asyncio
    async def test_run_script_null(self, session, page):
        page.evaluate.return_value = None

        assert await session.run_script("return null", 1.0) is NO_ARTIFACT

    @pytest.mark.asyncio
    async def test_run_script_falsy_values_are_artifacts(self, session, page):
        page.evaluate.return_value = 0

        assert await session.run_script("return 0", 1.0) == Extracted(0)

    @pytest.mark.asyncio
    async def test_run_script_error_is_transient(self, session, page):
        page.evaluate.side_effect = PlaywrightError("ReferenceError: foo is not defined")

        with pytest.raises(CrawlFailure) as exc_info:
            await session.run_script("return foo", 1.0)

        assert exc_info.value.kind is FailureKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_run_script_closed_page_is_fatal(self, session, page):
        page.evaluate.side_effect = PlaywrightError("Target page, context or browser has been closed")

        with pytest.raises(CrawlFailure) as exc_info:
            await session.run_script("return 1", 1.0)

        assert exc_info.value.kind is FailureKind.FATAL

    @pytest.mark.asyncio
    async def test_extract_links(self, session):
        assert await session.extract_links() == {"https://a.com/x", "https://b.com/"}

    @pytest.mark.asyncio
    async def test_close_swallows_closed_context(self, session, context):
        context.close.side_effect = PlaywrightError("Browser has been closed")

        await session.close()

        context.close.assert_awaited_once()


class TestProxyOptions:
    """Tests for proxy_options."""

    def test_no_proxy(self):
        assert proxy_options(None, "firefox") == {}

    def test_socks_proxy(self):
        proxy = parse_proxy("sock;address=https://proxy.local:1080;version=5;username=u;password=p")

        assert proxy_options(proxy, "chrome") == {
            "proxy": {"server": "socks5://proxy.local:1080", "username": "u", "password": "p"}
        }

    def test_http_proxy(self):
        proxy = parse_proxy("http;address=proxy.local:3128")

        assert proxy_options(proxy, "firefox") == {"proxy": {"server": "http://proxy.local:3128"}}

    def test_pac_firefox(self):
        proxy = parse_proxy("auto-config;address=http://wpad/proxy.pac")

        assert proxy_options(proxy, "firefox") == {
            "firefox_user_prefs": {
                "network.proxy.type": 2,
                "network.proxy.autoconfig_url": "http://wpad/proxy.pac",
            }
        }

    def test_pac_chrome(self):
        proxy = parse_proxy("auto-config;address=http://wpad/proxy.pac")

        assert proxy_options(proxy, "chrome") == {"args": ["--proxy-pac-url=http://wpad/proxy.pac"]}

    def test_direct(self):
        proxy = parse_proxy("direct")

        assert proxy_options(proxy, "chrome") == {"args": ["--no-proxy-server"]}
        assert proxy_options(proxy, "firefox") == {"firefox_user_prefs": {"network.proxy.type": 0}}

    def test_system_chrome(self):
        assert proxy_options(parse_proxy("system"), "chrome") == {}


class TestPlaywrightSessionFactory:
    """Tests for PlaywrightSessionFactory."""

    @pytest.fixture
    def playwright(self):
        page = MagicMock()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)
        browser.close = AsyncMock()

        playwright = MagicMock()
        playwright.stop = AsyncMock()
        for name in ("firefox", "chromium"):
            launcher = getattr(playwright, name)
            launcher.launch = AsyncMock(return_value=browser)
            launcher.connect = AsyncMock(return_value=browser)
            launcher.connect_over_cdp = AsyncMock(return_value=browser)
        return playwright

    @pytest.fixture
    def patched(self, playwright):
        manager = MagicMock()
        manager.start = AsyncMock(return_value=playwright)
        with patch("doonop.browser.async_playwright", return_value=manager):
            yield playwright

    @pytest.mark.asyncio
    async def test_launches_once(self, patched):
        factory = PlaywrightSessionFactory(CrawlConfig(proxy="http;address=proxy.local:3128"))

        first = await factory.create()
        second = await factory.create()

        assert isinstance(first, PlaywrightSession)
        assert first is not second
        patched.firefox.launch.assert_awaited_once_with(
            headless=True, proxy={"server": "http://proxy.local:3128"}
        )
        browser = patched.firefox.launch.return_value
        assert browser.new_context.await_count == 2

    @pytest.mark.asyncio
    async def test_chrome_remote_cdp(self, patched):
        config = CrawlConfig(browser="chrome", browser_endpoint="http://localhost:9222")

        await PlaywrightSessionFactory(config).create()

        patched.chromium.connect_over_cdp.assert_awaited_once()
        patched.chromium.launch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remote_proxy_applied_per_context(self, patched):
        config = CrawlConfig(
            browser_endpoint="ws://grid:4444/playwright",
            proxy="http;address=proxy.local:3128",
        )

        await PlaywrightSessionFactory(config).create()

        patched.firefox.connect.assert_awaited_once()
        browser = patched.firefox.connect.return_value
        browser.new_context.assert_awaited_once_with(
            ignore_https_errors=True, proxy={"server": "http://proxy.local:3128"}
        )

    @pytest.mark.asyncio
    async def test_launch_failure(self, patched):
        patched.firefox.launch.side_effect = PlaywrightError("Executable doesn't exist")
        factory = PlaywrightSessionFactory(CrawlConfig())

        with pytest.raises(SessionError, match="firefox"):
            await factory.create()

        patched.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_driver_failure_becomes_session_error(self, patched):
        patched.firefox.launch.side_effect = Exception("Connection closed while reading from the driver")
        factory = PlaywrightSessionFactory(CrawlConfig())

        with pytest.raises(SessionError, match="Connection closed"):
            await factory.create()

        patched.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close(self, patched):
        factory = PlaywrightSessionFactory(CrawlConfig())
        await factory.create()

        await factory.close()

        patched.firefox.launch.return_value.close.assert_awaited_once()
        patched.stop.assert_awaited_once()
