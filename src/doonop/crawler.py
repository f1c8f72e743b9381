"""
Crawl assembly.

Wires the configuration into a frontier, a filter chain, an artifact sink
and a worker pool, seeds the frontier and runs the pool to completion.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from doonop.browser import PlaywrightSessionFactory, SessionFactory
from doonop.config import CrawlConfig
from doonop.coordinator import WorkerPool
from doonop.filters import DomainFilter, FilterChain, IgnoreFilter
from doonop.frontier import Frontier
from doonop.models import Artifact, CrawlReport, CrawlStatistics, DiscoveryContext, Task, TaskOrigin
from doonop.output import JsonLinesWriter
from doonop.retry import create_retry_policy, get_claim_order
from doonop.robots import RobotsPolicy
from doonop.sink import ArtifactSink

logger = logging.getLogger(__name__)


def build_frontier(config: CrawlConfig, clock: Callable[[], float] = time.monotonic) -> Frontier:
    """Frontier with the claim order and retry policy named in ``config``."""
    order = get_claim_order(config.retry_policy)
    policy = create_retry_policy(
        order,
        retry_count=config.retry_count,
        retry_threshold=config.retry_threshold,
        clock=clock,
    )
    return Frontier(order, policy, clock=clock)


def build_filter_chain(config: CrawlConfig, robots: Optional[RobotsPolicy] = None) -> FilterChain:
    """Filter chain for ``config``.

    A robots policy is only consulted when ``use_robots_txt`` is set; one is
    created for the configured robot name unless ``robots`` is given.
    """
    if config.use_robots_txt and robots is None:
        robots = RobotsPolicy(config.robot_name)
    return FilterChain(
        ignore=IgnoreFilter(config.ignore_patterns),
        scope=DomainFilter(config.domains),
        robots=robots if config.use_robots_txt else None,
    )


class Crawler:
    """
    One crawl run.

    Example:
        crawler = Crawler(config)
        report = await crawler.run()
        print(report.statistics.summary_line())
    """

    def __init__(
        self,
        config: CrawlConfig,
        session_factory: Optional[SessionFactory] = None,
        emit: Optional[Callable[[Artifact], None]] = None,
        robots: Optional[RobotsPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the crawler.

        Args:
            config: Validated run configuration
            session_factory: Source of browser sessions (Playwright when None)
            emit: Artifact consumer (JSON lines on stdout when None)
            robots: robots.txt policy to use when ``use_robots_txt`` is set
            clock: Monotonic time source for retry scheduling
        """
        self.config = config
        self.session_factory = session_factory
        self.frontier = build_frontier(config, clock)
        self.filters = build_filter_chain(config, robots)
        self.sink = ArtifactSink(emit or JsonLinesWriter().write, limit=config.limit)
        self.pool: Optional[WorkerPool] = None
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop the run after in-flight pages finish."""
        self._stop_requested = True
        if self.pool is not None:
            self.pool.request_stop()

    async def seed(self, urls: Iterable[str]) -> int:
        """Pass seed URLs through the filter chain into the frontier.

        Returns:
            Number of seeds enqueued
        """
        context = DiscoveryContext(origin=TaskOrigin.SEED)
        count = 0
        for candidate in urls:
            url = await self.filters.admit(candidate, context)
            if url is not None and self.frontier.enqueue(Task(url=url, origin=TaskOrigin.SEED)):
                count += 1
        return count

    async def run(self, extra_seeds: Iterable[str] = ()) -> CrawlReport:
        """Crawl from the configured seeds (plus ``extra_seeds``) until done.

        Raises:
            PoolExhaustedError: If every worker died while work remained
        """
        seeded = await self.seed([*self.config.seed_urls, *extra_seeds])
        if seeded == 0:
            logger.info("No seed URLs to crawl")
            return self.report()

        logger.info(f"Crawling from {seeded} seed URLs with {self.config.concurrency} workers")
        factory = self.session_factory or PlaywrightSessionFactory(self.config)
        self.pool = WorkerPool(
            session_factory=factory,
            frontier=self.frontier,
            filters=self.filters,
            sink=self.sink,
            concurrency=self.config.concurrency,
            check_script=self.config.check_script,
            page_load_timeout=self.config.page_load_timeout,
            poll_interval=self.config.poll_interval,
        )
        if self._stop_requested:
            self.pool.request_stop()

        try:
            failures = await self.pool.run()
        finally:
            await factory.close()

        report = self.report()
        report.worker_failures = failures
        logger.info(report.statistics.summary_line())
        return report

    def statistics(self) -> CrawlStatistics:
        status = self.frontier.get_status()
        return CrawlStatistics(
            visited=status.visited,
            collected=self.sink.collected,
            errors=status.errors,
            retries=status.retries,
            ignored=self.filters.ignored_count,
            dropped=status.dropped,
            discarded=self.sink.discarded,
        )

    def report(self) -> CrawlReport:
        return CrawlReport(
            statistics=self.statistics(),
            dropped=self.frontier.dropped,
            limit_reached=self.sink.limit_reached,
            interrupted=self._stop_requested,
        )


async def crawl(
    config: CrawlConfig,
    session_factory: Optional[SessionFactory] = None,
    emit: Optional[Callable[[Artifact], None]] = None,
    extra_seeds: Iterable[str] = (),
) -> CrawlReport:
    """Run one crawl with ``config`` and return its report."""
    return await Crawler(config, session_factory=session_factory, emit=emit).run(extra_seeds)
