"""Shared fixtures: an in-memory site served through fake browser sessions."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from doonop.config import CrawlConfig
from doonop.errors import CrawlFailure, FailureKind, SessionError
from doonop.models import NO_ARTIFACT, Extracted


@dataclass
class FakePage:
    """A page of the fake site."""
    links: list[str] = field(default_factory=list)
    # Value returned by the check script; "url" means the page URL
    value: Any = "url"
    # Failure kinds raised by successive navigations before the page loads
    failures: list[FailureKind] = field(default_factory=list)


class FakeSite:
    """URL -> FakePage map shared by every session of a factory."""

    def __init__(self, pages: Optional[dict[str, FakePage]] = None):
        self.pages = pages or {}
        self.visits: list[str] = []

    def add(self, url: str, *links: str, value: Any = "url", failures=()) -> None:
        self.pages[url] = FakePage(links=list(links), value=value, failures=list(failures))


class FakeSession:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.closed = False

    async def navigate(self, url: str, timeout: float) -> None:
        await asyncio.sleep(0)
        self.site.visits.append(url)
        page = self.site.pages.get(url)
        if page is None:
            raise CrawlFailure(FailureKind.PERMANENT, url, "net::ERR_NAME_NOT_RESOLVED")
        if page.failures:
            kind = page.failures.pop(0)
            raise CrawlFailure(kind, url, f"simulated {kind.value} failure")
        self.url = url

    async def extract_links(self) -> set[str]:
        return set(self.site.pages[self.url].links)

    async def run_script(self, source: str, timeout: float):
        value = self.site.pages[self.url].value
        if value is None:
            return NO_ARTIFACT
        return Extracted(self.url if value == "url" else value)

    def current_url(self) -> str:
        return self.url

    async def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Creates FakeSessions; the first ``broken`` creations fail."""

    def __init__(self, site: FakeSite, broken: int = 0):
        self.site = site
        self.broken = broken
        self.sessions: list[FakeSession] = []
        self.closed = False

    async def create(self) -> FakeSession:
        if self.broken > 0:
            self.broken -= 1
            raise SessionError("Failed to create a browser session: connection refused")
        session = FakeSession(self.site)
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_config():
    """Build a CrawlConfig with fast polling and immediate retries."""

    def _make(**overrides) -> CrawlConfig:
        options = {
            "poll_interval_ms": 5,
            "retry_threshold_ms": 0,
            "page_load_timeout_ms": 1000,
        }
        options.update(overrides)
        return CrawlConfig.build(**options)

    return _make
