"""Crawl worker: one browser session looping over frontier tasks."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from doonop.browser import BrowserSession, SessionFactory
from doonop.constants import MIN_IDLE_WAIT_SECONDS
from doonop.errors import CrawlFailure, FailureKind, SessionError
from doonop.filters import FilterChain
from doonop.frontier import Frontier
from doonop.models import Artifact, DiscoveryContext, Extracted, Task, TaskOrigin
from doonop.sink import ArtifactSink

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Lifecycle of a worker."""
    IDLE = "idle"
    CLAIMING = "claiming"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    REPORTING = "reporting"
    STOPPED = "stopped"


class Worker:
    """
    One logical crawl agent.

    Loops Claiming -> Navigating -> Extracting -> Reporting until the stop
    event is set or the frontier is quiescent. A failed page never stops the
    worker; only losing its browser session does, in which case the task it
    held goes back to the frontier untouched.
    """

    def __init__(
        self,
        worker_id: int,
        session_factory: SessionFactory,
        frontier: Frontier,
        filters: FilterChain,
        sink: ArtifactSink,
        stop_event: asyncio.Event,
        check_script: str,
        page_load_timeout: float,
        poll_interval: float,
    ):
        self.worker_id = worker_id
        self.session_factory = session_factory
        self.frontier = frontier
        self.filters = filters
        self.sink = sink
        self.stop_event = stop_event
        self.check_script = check_script
        self.page_load_timeout = page_load_timeout
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self.failure: Optional[str] = None
        self.pages_processed = 0

    @property
    def is_alive(self) -> bool:
        return self.failure is None

    async def run(self) -> None:
        """Create the session and process tasks until told to stop."""
        try:
            session = await self.session_factory.create()
        except SessionError as e:
            self._fail(str(e))
            return
        except Exception as e:
            logger.exception(f"Worker {self.worker_id} could not open a browser session")
            self._fail(f"{type(e).__name__}: {e}")
            return

        logger.info(f"Worker {self.worker_id} started")
        task: Optional[Task] = None
        try:
            while True:
                task = await self._claim()
                if task is None:
                    break
                if not await self._process(session, task):
                    break
                task = None
        except Exception as e:
            logger.exception(f"Worker {self.worker_id} crashed")
            if task is not None:
                self.frontier.release(task)
            self._fail(f"{type(e).__name__}: {e}")
        finally:
            await session.close()
            self.state = WorkerState.STOPPED
            logger.info(f"Worker {self.worker_id} stopped after {self.pages_processed} pages")

    async def _claim(self) -> Optional[Task]:
        while True:
            self.state = WorkerState.CLAIMING
            if self.stop_event.is_set() or self.sink.limit_reached:
                return None

            task = self.frontier.claim_next()
            if task is not None:
                return task
            if self.frontier.is_quiescent():
                return None

            self.state = WorkerState.IDLE
            await self._idle_wait()

    async def _idle_wait(self) -> None:
        delay = self.poll_interval
        retry_in = self.frontier.next_retry_in()
        if retry_in is not None:
            delay = min(delay, retry_in)
        try:
            await asyncio.wait_for(self.stop_event.wait(), max(delay, MIN_IDLE_WAIT_SECONDS))
        except asyncio.TimeoutError:
            pass

    async def _process(self, session: BrowserSession, task: Task) -> bool:
        """Visit one task.

        Returns:
            False if the session died and the worker must stop
        """
        logger.info(f"Worker {self.worker_id} works on {task.url} (attempt {task.attempt + 1})")
        try:
            self.state = WorkerState.NAVIGATING
            await session.navigate(task.url, self.page_load_timeout)

            self.state = WorkerState.EXTRACTING
            links = await session.extract_links()
            result = await session.run_script(self.check_script, self.page_load_timeout)
        except CrawlFailure as failure:
            if failure.kind is FailureKind.FATAL:
                self.frontier.release(task)
                self._fail(failure.message)
                return False
            logger.warning(f"Worker {self.worker_id}: {failure} (attempt {task.attempt + 1})")
            self.frontier.report_failure(task, failure.kind, failure.message)
            self.pages_processed += 1
            return True

        self.state = WorkerState.REPORTING
        if isinstance(result, Extracted):
            self.sink.accept(Artifact(url=task.url, data=result.value))

        # Links are enqueued before the task completes, so the frontier
        # cannot look quiescent while discoveries are still on their way
        context = DiscoveryContext(origin=TaskOrigin.DISCOVERED, parent_url=task.url)
        queued = 0
        for link in sorted(links):
            url = await self.filters.admit(link, context)
            if url is not None and self.frontier.enqueue(Task(url=url, origin=TaskOrigin.DISCOVERED)):
                queued += 1
        if queued:
            logger.debug(f"Queued {queued} new links from {task.url}")

        self.frontier.report_success(task)
        self.pages_processed += 1
        self.state = WorkerState.IDLE
        return True

    def _fail(self, reason: str) -> None:
        self.failure = reason
        self.state = WorkerState.STOPPED
        logger.error(f"Worker {self.worker_id} failed: {reason}")
