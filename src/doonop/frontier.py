"""
Thread-safe URL frontier.

Every URL the frontier has accepted is in exactly one bucket: Pending,
In-flight, RetryWaiting, Completed or Dropped. All transitions happen under
a single lock and never span a browser call, so concurrent workers always
see a consistent partition.
"""

import heapq
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from threading import Lock
from typing import Callable, Optional

from doonop.errors import FailureKind
from doonop.models import DropRecord, Task, UrlState
from doonop.retry import ClaimOrder, Drop, Retry, RetryDecision, RetryPolicy, Source

logger = logging.getLogger(__name__)


@dataclass
class FrontierStatus:
    """Snapshot of bucket sizes and outcome counters."""
    pending: int
    in_flight: int
    retry_waiting: int
    completed: int
    dropped: int
    visited: int
    errors: int
    retries: int


class Frontier:
    """
    Shared pool of crawl tasks.

    The claim order strategy is injected, so the frontier itself has no
    knowledge of which retry policy is in effect.
    """

    def __init__(
        self,
        claim_order: ClaimOrder,
        retry_policy: RetryPolicy,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the frontier.

        Args:
            claim_order: Strategy choosing between fresh and retry work
            retry_policy: Decides the fate of failed tasks
            clock: Monotonic time source in seconds
        """
        self.claim_order = claim_order
        self.retry_policy = retry_policy
        self._clock = clock

        self._lock = Lock()
        self._states: dict[str, UrlState] = {}
        self._pending: deque[Task] = deque()
        self._retry_waiting: list[tuple[float, int, Task]] = []  # (not_before, seq, task) heap
        self._in_flight: dict[str, Task] = {}
        self._dropped: list[DropRecord] = []
        self._seq = itertools.count()

        self._visited = 0
        self._errors = 0
        self._retries = 0

    def enqueue(self, task: Task) -> bool:
        """Insert a task into Pending.

        A URL the frontier already knows about, in any bucket, is left
        untouched.

        Returns:
            True if the task was inserted
        """
        with self._lock:
            if task.url in self._states:
                return False
            if task.first_seen_at is None:
                task = replace(task, first_seen_at=self._clock())
            self._states[task.url] = UrlState.PENDING
            self._pending.append(task)
            return True

    def claim_next(self) -> Optional[Task]:
        """Move the next eligible task into In-flight and return it.

        Returns:
            The claimed task, or None if nothing is claimable right now
        """
        with self._lock:
            now = self._clock()
            has_eligible_retry = bool(self._retry_waiting) and self._retry_waiting[0][0] <= now
            source = self.claim_order.pick(bool(self._pending), has_eligible_retry)

            if source is Source.PENDING:
                task = self._pending.popleft()
            elif source is Source.RETRY:
                _, _, task = heapq.heappop(self._retry_waiting)
            else:
                return None

            task = replace(task, last_attempt_at=now)
            self._states[task.url] = UrlState.IN_FLIGHT
            self._in_flight[task.url] = task
            return task

    def report_success(self, task: Task) -> None:
        """Mark an in-flight task Completed."""
        with self._lock:
            if self._in_flight.pop(task.url, None) is None:
                logger.warning(f"Success reported for {task.url}, which is not in flight")
                return
            self._states[task.url] = UrlState.COMPLETED
            self._visited += 1

    def report_failure(self, task: Task, kind: FailureKind, reason: str = "") -> RetryDecision:
        """Take a failed task out of In-flight and apply the retry policy.

        Returns:
            The retry policy's decision
        """
        decision = self.retry_policy.on_failure(task, kind, reason)

        with self._lock:
            if self._in_flight.pop(task.url, None) is None:
                logger.warning(f"Failure reported for {task.url}, which is not in flight")
                return decision

            self._visited += 1
            self._errors += 1

            if isinstance(decision, Retry):
                retried = decision.task
                self._states[task.url] = UrlState.RETRY_WAITING
                heapq.heappush(self._retry_waiting, (retried.not_before, next(self._seq), retried))
                self._retries += 1
                logger.info(
                    f"Retry {retried.attempt}/{self.retry_policy.retry_count} scheduled for {task.url}"
                )
            elif isinstance(decision, Drop):
                self._states[task.url] = UrlState.DROPPED
                self._dropped.append(decision.record)
                logger.info(f"Dropped {task.url} ({kind.value}): {reason}")

        return decision

    def release(self, task: Task) -> None:
        """Return an in-flight task to the head of Pending without counting an attempt.

        Used when the worker holding it lost its browser session.
        """
        with self._lock:
            if self._in_flight.pop(task.url, None) is None:
                return
            self._states[task.url] = UrlState.PENDING
            self._pending.appendleft(task)

    def is_quiescent(self) -> bool:
        """True iff nothing is pending, in flight, or waiting for a retry."""
        with self._lock:
            return not (self._pending or self._in_flight or self._retry_waiting)

    def next_retry_in(self) -> Optional[float]:
        """Seconds until the earliest waiting retry becomes eligible."""
        with self._lock:
            if not self._retry_waiting or not self.claim_order.reconsiders_retries:
                return None
            return max(0.0, self._retry_waiting[0][0] - self._clock())

    def state_of(self, url: str) -> Optional[UrlState]:
        with self._lock:
            return self._states.get(url)

    @property
    def dropped(self) -> list[DropRecord]:
        with self._lock:
            return list(self._dropped)

    def get_status(self) -> FrontierStatus:
        """Get current frontier status."""
        with self._lock:
            completed = sum(1 for s in self._states.values() if s is UrlState.COMPLETED)
            return FrontierStatus(
                pending=len(self._pending),
                in_flight=len(self._in_flight),
                retry_waiting=len(self._retry_waiting),
                completed=completed,
                dropped=len(self._dropped),
                visited=self._visited,
                errors=self._errors,
                retries=self._retries,
            )
