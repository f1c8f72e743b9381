"""Worker pool: spawns workers and decides when the crawl is over."""

import asyncio
import logging
from typing import Optional

from doonop.browser import SessionFactory
from doonop.errors import PoolExhaustedError
from doonop.filters import FilterChain
from doonop.frontier import Frontier
from doonop.models import WorkerFailure
from doonop.sink import ArtifactSink
from doonop.worker import Worker

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Runs ``concurrency`` workers against one frontier.

    The crawl ends when the frontier is quiescent, when the artifact limit is
    reached, or when ``request_stop`` is called. In every case the stop is
    broadcast and all workers are awaited before ``run`` returns; a worker in
    the middle of a page finishes it first.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        frontier: Frontier,
        filters: FilterChain,
        sink: ArtifactSink,
        concurrency: int,
        check_script: str,
        page_load_timeout: float,
        poll_interval: float,
    ):
        self.session_factory = session_factory
        self.frontier = frontier
        self.filters = filters
        self.sink = sink
        self.concurrency = concurrency
        self.check_script = check_script
        self.page_load_timeout = page_load_timeout
        self.poll_interval = poll_interval

        self.workers: list[Worker] = []
        self.interrupted = False
        self._stop_event: Optional[asyncio.Event] = None

    def request_stop(self) -> None:
        """Ask every worker to stop after its current page."""
        self.interrupted = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> list[WorkerFailure]:
        """Run the workers until the crawl is over.

        Returns:
            Diagnostics for workers that died along the way

        Raises:
            PoolExhaustedError: If every worker died while work remained
        """
        self._stop_event = asyncio.Event()
        if self.interrupted:
            self._stop_event.set()

        self.workers = [
            Worker(
                worker_id=i,
                session_factory=self.session_factory,
                frontier=self.frontier,
                filters=self.filters,
                sink=self.sink,
                stop_event=self._stop_event,
                check_script=self.check_script,
                page_load_timeout=self.page_load_timeout,
                poll_interval=self.poll_interval,
            )
            for i in range(self.concurrency)
        ]
        logger.info(f"Starting {self.concurrency} workers")
        tasks = [
            asyncio.create_task(worker.run(), name=f"worker-{worker.worker_id}")
            for worker in self.workers
        ]

        try:
            await self._monitor(tasks)
        finally:
            self._stop_event.set()
            results = await asyncio.gather(*tasks, return_exceptions=True)

        for worker, result in zip(self.workers, results):
            if isinstance(result, Exception) and worker.failure is None:
                worker.failure = f"{type(result).__name__}: {result}"

        failures = [
            WorkerFailure(worker_id=w.worker_id, reason=w.failure)
            for w in self.workers
            if w.failure is not None
        ]
        if failures and len(failures) == len(self.workers) and not self.frontier.is_quiescent():
            raise PoolExhaustedError(
                f"All {len(self.workers)} workers failed; last error: {failures[-1].reason}"
            )
        return failures

    async def _monitor(self, tasks: list[asyncio.Task]) -> None:
        reported: set[int] = set()
        while True:
            for worker in self.workers:
                if worker.failure is not None and worker.worker_id not in reported:
                    reported.add(worker.worker_id)
                    alive = sum(1 for w in self.workers if w.is_alive)
                    logger.warning(
                        f"Worker {worker.worker_id} is gone ({worker.failure}); "
                        f"{alive} of {len(self.workers)} workers left"
                    )

            if self._stop_event.is_set():
                logger.info("Stop requested")
                return
            if self.sink.limit_reached:
                logger.info("Artifact limit reached, stopping workers")
                return
            if self.frontier.is_quiescent():
                logger.info("No work left, stopping workers")
                return
            if all(task.done() for task in tasks):
                return

            try:
                await asyncio.wait_for(self._stop_event.wait(), self.poll_interval)
            except asyncio.TimeoutError:
                pass
