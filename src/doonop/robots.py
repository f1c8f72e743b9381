"""robots.txt policy, fetched once per origin."""

import asyncio
import logging
from typing import Optional
from urllib.robotparser import RobotFileParser

import httpx

from doonop.constants import ROBOTS_FETCH_TIMEOUT_SECONDS
from doonop.errors import RobotsUnavailable
from doonop.urls import origin_of

logger = logging.getLogger(__name__)


class _OriginRules:
    """Parsed robots.txt of one origin, or the reason it is unavailable."""

    def __init__(
        self,
        parser: Optional[RobotFileParser] = None,
        sitemaps: Optional[list[str]] = None,
        error: Optional[str] = None,
    ):
        self.parser = parser
        self.sitemaps = sitemaps or []
        self.error = error


class RobotsPolicy:
    """
    Answers whether an agent may visit a URL.

    Each origin's robots.txt is fetched with httpx the first time one of its
    URLs is checked; concurrent checks for the same origin share that fetch.
    A missing file (any non-200 status) allows everything. A network failure
    is remembered and reported as ``RobotsUnavailable`` on every check for
    that origin.
    """

    def __init__(
        self,
        agent: str,
        timeout: float = ROBOTS_FETCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the policy.

        Args:
            agent: Robot name matched against User-agent lines
            timeout: Fetch timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.agent = agent
        self.timeout = timeout
        self._transport = transport
        self._rules: dict[str, _OriginRules] = {}
        self._fetch_locks: dict[str, asyncio.Lock] = {}

    async def is_allowed(self, url: str) -> bool:
        """Check ``url`` against its origin's robots.txt.

        Raises:
            RobotsUnavailable: If robots.txt could not be fetched
        """
        origin = origin_of(url)
        if origin is None:
            return True

        rules = await self._rules_for(origin)
        if rules.error is not None:
            raise RobotsUnavailable(origin, rules.error)
        if rules.parser is None:
            return True
        return rules.parser.can_fetch(self.agent, url)

    async def sitemaps(self, url: str) -> list[str]:
        """``Sitemap:`` entries of the robots.txt for ``url``'s origin."""
        origin = origin_of(url)
        if origin is None:
            return []
        rules = await self._rules_for(origin)
        return list(rules.sitemaps)

    async def _rules_for(self, origin: str) -> _OriginRules:
        rules = self._rules.get(origin)
        if rules is not None:
            return rules

        lock = self._fetch_locks.setdefault(origin, asyncio.Lock())
        async with lock:
            rules = self._rules.get(origin)
            if rules is None:
                rules = await self._fetch(origin)
                self._rules[origin] = rules
        return rules

    async def _fetch(self, origin: str) -> _OriginRules:
        robots_url = f"{origin}/robots.txt"
        headers = {
            "User-Agent": self.agent,
            "Accept": "text/plain,text/html,*/*",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(robots_url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Could not load robots.txt from {robots_url}: {e}")
            return _OriginRules(error=str(e) or type(e).__name__)

        if response.status_code != 200:
            logger.info(f"No robots.txt found at {robots_url} (status: {response.status_code})")
            return _OriginRules()

        lines = response.text.splitlines()
        parser = RobotFileParser()
        parser.set_url(robots_url)
        parser.parse(lines)
        logger.info(f"Loaded robots.txt from {robots_url}")

        sitemaps = [
            line.split(":", 1)[1].strip()
            for line in lines
            if line.lower().startswith("sitemap:") and line.split(":", 1)[1].strip()
        ]
        return _OriginRules(parser=parser, sitemaps=sitemaps)
