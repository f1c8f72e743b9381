"""
Browser session boundary.

Each worker owns one ``BrowserSession``. The Playwright implementation
shares one browser between all sessions and gives every session its own
isolated browser context and page, so sessions never share cookies,
storage or navigation state.

Every failure leaving this module is a ``CrawlFailure`` tagged with a
``FailureKind``; callers never inspect Playwright errors themselves.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from doonop.config import CrawlConfig, ProxySetting
from doonop.constants import BROWSER_CONNECT_TIMEOUT_MS
from doonop.errors import CrawlFailure, FailureKind, SessionError
from doonop.models import NO_ARTIFACT, Extracted, ExtractionResult

logger = logging.getLogger(__name__)


class BrowserSession(Protocol):
    """One browser tab a worker drives."""

    async def navigate(self, url: str, timeout: float) -> None: ...

    async def run_script(self, source: str, timeout: float) -> ExtractionResult: ...

    async def extract_links(self) -> set[str]: ...

    def current_url(self) -> str: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    """Creates independent browser sessions."""

    async def create(self) -> BrowserSession: ...

    async def close(self) -> None: ...


# Errors that won't resolve with a retry
PERMANENT_ERROR_PATTERNS = (
    "net::err_name_not_resolved",
    "net::err_connection_refused",
    "net::err_address_unreachable",
    "net::err_invalid_url",
    "net::err_unsafe_port",
    "ns_error_unknown_host",
    "ns_error_connection_refused",
    "ns_error_malformed_uri",
    "invalid url",
    "cannot navigate to invalid url",
)

# Errors meaning the page, context or browser is gone
FATAL_ERROR_PATTERNS = (
    "target page, context or browser has been closed",
    "target closed",
    "browser has been closed",
    "browser closed",
    "connection closed",
)

LINKS_SCRIPT = "elements => elements.map(e => e.href).filter(href => typeof href === 'string')"


def classify_error(error: BaseException) -> FailureKind:
    """Map a browser error onto the scheduler's failure kinds.

    Args:
        error: Exception raised by a browser call

    Returns:
        FATAL for a dead session, PERMANENT for errors a retry cannot fix,
        TRANSIENT otherwise (timeouts included)
    """
    if isinstance(error, (asyncio.TimeoutError, PlaywrightTimeoutError)):
        return FailureKind.TRANSIENT

    message = str(error).lower()
    if any(pattern in message for pattern in FATAL_ERROR_PATTERNS):
        return FailureKind.FATAL
    if any(pattern in message for pattern in PERMANENT_ERROR_PATTERNS):
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


def wrap_script(source: str) -> str:
    """Turn a function body into an async function Playwright can evaluate."""
    return f"async () => {{\n{source}\n}}"


class PlaywrightSession:
    """BrowserSession backed by a Playwright context and page."""

    def __init__(self, context: Any, page: Any):
        self._context = context
        self._page = page

    async def navigate(self, url: str, timeout: float) -> None:
        try:
            await self._page.goto(url, timeout=timeout * 1000, wait_until="load")
        except (PlaywrightError, asyncio.TimeoutError) as e:
            raise CrawlFailure(classify_error(e), url, f"Failed to open a url: {e}") from e

    async def run_script(self, source: str, timeout: float) -> ExtractionResult:
        """Run the check script in the page.

        A script error is transient unless the session itself died.
        """
        try:
            value = await asyncio.wait_for(self._page.evaluate(wrap_script(source)), timeout)
        except (PlaywrightError, asyncio.TimeoutError) as e:
            raise CrawlFailure(
                _script_failure_kind(e), self.current_url(), f"Failed to execute a script: {e}"
            ) from e

        if value is None:
            return NO_ARTIFACT
        return Extracted(value)

    async def extract_links(self) -> set[str]:
        try:
            hrefs = await self._page.eval_on_selector_all("a[href]", LINKS_SCRIPT)
        except PlaywrightError as e:
            raise CrawlFailure(
                _script_failure_kind(e), self.current_url(), f"Failed to find links: {e}"
            ) from e
        return {href for href in hrefs if href}

    def current_url(self) -> str:
        return self._page.url

    async def close(self) -> None:
        try:
            await self._context.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing browser context: {e}")


def _script_failure_kind(error: BaseException) -> FailureKind:
    kind = classify_error(error)
    return FailureKind.FATAL if kind is FailureKind.FATAL else FailureKind.TRANSIENT


def proxy_options(proxy: Optional[ProxySetting], browser: str) -> dict[str, Any]:
    """Translate a proxy setting into Playwright launch options.

    Manual proxies map onto Playwright's ``proxy`` option; the others are
    browser-level settings (Chromium switches, Firefox preferences).

    Returns:
        Keyword arguments for ``BrowserType.launch``
    """
    if proxy is None:
        return {}

    if proxy.kind == "sock":
        host = _strip_scheme(proxy.address)
        server: dict[str, Any] = {"server": f"socks{proxy.version}://{host}"}
        if proxy.username:
            server["username"] = proxy.username
        if proxy.password:
            server["password"] = proxy.password
        return {"proxy": server}

    if proxy.kind == "http":
        address = proxy.address if "://" in proxy.address else f"http://{proxy.address}"
        return {"proxy": {"server": address}}

    if browser == "firefox":
        prefs = {
            "auto-config": {"network.proxy.type": 2, "network.proxy.autoconfig_url": proxy.address},
            "auto-detect": {"network.proxy.type": 4},
            "direct": {"network.proxy.type": 0},
            "system": {"network.proxy.type": 5},
        }[proxy.kind]
        return {"firefox_user_prefs": prefs}

    args = {
        "auto-config": [f"--proxy-pac-url={proxy.address}"],
        "auto-detect": ["--proxy-auto-detect"],
        "direct": ["--no-proxy-server"],
        "system": [],
    }[proxy.kind]
    return {"args": args} if args else {}


def _strip_scheme(address: str) -> str:
    if "://" in address:
        return urlsplit(address).netloc
    return address


class PlaywrightSessionFactory:
    """
    Hands out isolated sessions on one shared browser.

    The browser is launched locally, or connected to when
    ``browser_endpoint`` is configured, on the first ``create`` call.
    """

    def __init__(self, config: CrawlConfig):
        """
        Initialize the factory.

        Args:
            config: Crawl configuration (browser kind, endpoint, proxy, timeouts)
        """
        self.config = config
        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()

    async def create(self) -> PlaywrightSession:
        """Create a new session.

        Raises:
            SessionError: If the browser or the context cannot be created
        """
        async with self._lock:
            if self._browser is None:
                await self._start()

        context_options: dict[str, Any] = {"ignore_https_errors": True}
        if self.config.browser_endpoint and self.config.proxy is not None:
            # Launch options never reach a remote browser
            manual = proxy_options(self.config.proxy, self.config.browser).get("proxy")
            if manual:
                context_options["proxy"] = manual

        try:
            context = await self._browser.new_context(**context_options)
            context.set_default_timeout(self.config.page_load_timeout_ms)
            page = await context.new_page()
        except PlaywrightError as e:
            raise SessionError(f"Failed to create a browser session: {e}") from e

        return PlaywrightSession(context, page)

    async def _start(self) -> None:
        launcher_name = "firefox" if self.config.browser == "firefox" else "chromium"
        try:
            self._playwright = await async_playwright().start()
            launcher = getattr(self._playwright, launcher_name)

            endpoint = self.config.browser_endpoint
            if endpoint and endpoint.startswith(("http://", "https://")) and launcher_name == "chromium":
                self._browser = await launcher.connect_over_cdp(endpoint, timeout=BROWSER_CONNECT_TIMEOUT_MS)
            elif endpoint:
                self._browser = await launcher.connect(endpoint, timeout=BROWSER_CONNECT_TIMEOUT_MS)
            else:
                options = {"headless": self.config.headless}
                options.update(proxy_options(self.config.proxy, self.config.browser))
                self._browser = await launcher.launch(**options)
        except Exception as e:
            # Driver failures surface as plain exceptions, not PlaywrightError
            await self.close()
            raise SessionError(f"Failed to start {launcher_name}: {e}") from e

        logger.info(
            f"Browser {launcher_name} ready "
            f"({'remote ' + self.config.browser_endpoint if self.config.browser_endpoint else 'local'})"
        )

    async def close(self) -> None:
        """Close the shared browser and stop Playwright."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None
