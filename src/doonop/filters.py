"""
URL filter chain.

Decides whether a discovered URL may enter the frontier. Checks run in a
fixed order and stop at the first rejection; only the final seen-set step
mutates shared state.
"""

import logging
import re
from collections import Counter
from enum import Enum
from threading import Lock
from typing import Iterable, Optional

from doonop.errors import RobotsUnavailable
from doonop.models import DiscoveryContext
from doonop.robots import RobotsPolicy
from doonop.urls import host_of, normalize_url, path_of

logger = logging.getLogger(__name__)


class RejectReason(Enum):
    """Why the filter chain turned a URL away."""
    MALFORMED = "malformed"
    IGNORED = "ignored"
    OUT_OF_SCOPE = "out_of_scope"
    ROBOTS_DENIED = "robots_denied"
    DUPLICATE = "duplicate"


class SeenSet:
    """Normalized URLs ever accepted. Grows monotonically."""

    def __init__(self):
        self._lock = Lock()
        self._urls: set[str] = set()

    def add(self, url: str) -> bool:
        """Insert ``url`` unless present; check and insert are one step.

        Returns:
            True if the URL was not seen before
        """
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


class IgnoreFilter:
    """Rejects URLs matched by any of the configured regular expressions.

    A pattern is searched in the URL path and in the whole URL.
    """

    def __init__(self, patterns: Iterable[re.Pattern]):
        self.patterns = list(patterns)

    def is_ignored(self, url: str) -> bool:
        path = path_of(url)
        return any(p.search(path) or p.search(url) for p in self.patterns)


class DomainFilter:
    """Keeps URLs whose host is one of the allowed domains.

    A leading ``www.`` is ignored on both sides.
    """

    def __init__(self, domains: Iterable[str]):
        self.domains = {_strip_www(d.lower()) for d in domains}

    def is_ignored(self, url: str) -> bool:
        if not self.domains:
            return False
        host = host_of(url)
        if host is None:
            return True
        return _strip_www(host) not in self.domains


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


class FilterChain:
    """
    Predicate pipeline in front of the frontier.

    Order: well-formedness, ignore list, scope, robots.txt, seen set.
    Configuration is read-only after construction; the seen set is the only
    shared mutable part.
    """

    def __init__(
        self,
        ignore: Optional[IgnoreFilter] = None,
        scope: Optional[DomainFilter] = None,
        robots: Optional[RobotsPolicy] = None,
        seen: Optional[SeenSet] = None,
    ):
        self.ignore = ignore or IgnoreFilter([])
        self.scope = scope or DomainFilter([])
        self.robots = robots
        self.seen = seen if seen is not None else SeenSet()

        self._stats_lock = Lock()
        self._rejections: Counter = Counter()

    async def admit(
        self, candidate: str, context: DiscoveryContext = DiscoveryContext()
    ) -> Optional[str]:
        """Run a candidate through the chain.

        Args:
            candidate: URL as discovered
            context: Where the URL came from

        Returns:
            The normalized URL if accepted, otherwise None
        """
        url = normalize_url(candidate)
        if url is None:
            return self._reject(candidate, RejectReason.MALFORMED, context)

        if self.ignore.is_ignored(url):
            return self._reject(url, RejectReason.IGNORED, context)

        if self.scope.is_ignored(url):
            return self._reject(url, RejectReason.OUT_OF_SCOPE, context)

        if self.robots is not None and not await self._robots_allow(url):
            return self._reject(url, RejectReason.ROBOTS_DENIED, context)

        if not self.seen.add(url):
            return self._reject(url, RejectReason.DUPLICATE, context)

        return url

    async def accept(
        self, candidate: str, context: DiscoveryContext = DiscoveryContext()
    ) -> bool:
        return await self.admit(candidate, context) is not None

    async def _robots_allow(self, url: str) -> bool:
        try:
            return await self.robots.is_allowed(url)
        except RobotsUnavailable as e:
            # Fail open: crawl continuity over strictness
            logger.debug(f"Allowing {url}: {e}")
            return True

    def _reject(self, url: str, reason: RejectReason, context: DiscoveryContext) -> None:
        with self._stats_lock:
            self._rejections[reason] += 1
        logger.debug(f"Rejected {url} ({reason.value}), found on {context.parent_url or context.origin.value}")
        return None

    @property
    def rejections(self) -> dict[RejectReason, int]:
        with self._stats_lock:
            return dict(self._rejections)

    @property
    def ignored_count(self) -> int:
        """Rejections other than duplicates."""
        with self._stats_lock:
            return sum(n for r, n in self._rejections.items() if r is not RejectReason.DUPLICATE)
