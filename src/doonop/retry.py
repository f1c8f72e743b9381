"""
Retry handling.

``RetryPolicy`` decides whether a failed task comes back and when.
``ClaimOrder`` strategies decide, at claim time, whether eligible retries
are served before or after fresh work; the frontier is injected with one of
them and does not branch on the policy name itself.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from doonop.constants import DEFAULT_RETRY_COUNT, DEFAULT_RETRY_THRESHOLD_MS
from doonop.errors import FailureKind
from doonop.models import DropRecord, Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Retry:
    """The task re-enters the frontier as ``task`` once ``task.not_before`` passes."""
    task: Task


@dataclass(frozen=True)
class Drop:
    """The URL is abandoned for good."""
    record: DropRecord


RetryDecision = Union[Retry, Drop]


class RetryPolicy:
    """
    Fixed-delay retry policy.

    Only transient failures are retried, and only while
    ``task.attempt < retry_count``; a URL is therefore attempted at most
    ``retry_count + 1`` times.
    """

    def __init__(
        self,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_threshold: float = DEFAULT_RETRY_THRESHOLD_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the retry policy.

        Args:
            retry_count: Retries allowed per URL after its first attempt
            retry_threshold: Seconds a failed URL waits before it may be claimed again
            clock: Time source shared with the frontier
        """
        self.retry_count = retry_count
        self.retry_threshold = retry_threshold
        self._clock = clock

    def on_failure(self, task: Task, kind: FailureKind, reason: str = "") -> RetryDecision:
        if kind is FailureKind.TRANSIENT and task.attempt < self.retry_count:
            now = self._clock()
            return Retry(task.next_attempt(failed_at=now, not_before=now + self.retry_threshold))

        if kind is FailureKind.TRANSIENT:
            reason = reason or "retry limit exceeded"
            logger.warning(
                f"Giving up on {task.url} after {task.attempt + 1} attempts: {reason}"
            )
        return Drop(DropRecord(url=task.url, attempts=task.attempt + 1, kind=kind, reason=reason))


class Source(Enum):
    """Frontier bucket a claim is served from."""
    PENDING = "pending"
    RETRY = "retry"


class ClaimOrder:
    """Strategy choosing between fresh and retry work at claim time."""

    name: str = ""

    # Whether failed tasks are kept for retry at all
    reconsiders_retries: bool = True

    def pick(self, has_pending: bool, has_eligible_retry: bool) -> Optional[Source]:
        raise NotImplementedError


class NoRetryOrder(ClaimOrder):
    """Only fresh work is ever claimed."""

    name = "no"
    reconsiders_retries = False

    def pick(self, has_pending: bool, has_eligible_retry: bool) -> Optional[Source]:
        return Source.PENDING if has_pending else None


class RetryFirstOrder(ClaimOrder):
    """Eligible retries jump the queue, finishing started branches first."""

    name = "first"

    def pick(self, has_pending: bool, has_eligible_retry: bool) -> Optional[Source]:
        if has_eligible_retry:
            return Source.RETRY
        if has_pending:
            return Source.PENDING
        return None


class RetryLastOrder(ClaimOrder):
    """Fresh work always wins; retries run when nothing new is pending."""

    name = "last"

    def pick(self, has_pending: bool, has_eligible_retry: bool) -> Optional[Source]:
        if has_pending:
            return Source.PENDING
        if has_eligible_retry:
            return Source.RETRY
        return None


CLAIM_ORDERS: dict[str, type[ClaimOrder]] = {
    NoRetryOrder.name: NoRetryOrder,
    RetryFirstOrder.name: RetryFirstOrder,
    RetryLastOrder.name: RetryLastOrder,
}


def get_claim_order(name: str) -> ClaimOrder:
    """Instantiate the claim order registered under ``name``."""
    try:
        return CLAIM_ORDERS[name]()
    except KeyError:
        raise ValueError(f"Unknown retry policy: {name}") from None


def create_retry_policy(
    order: ClaimOrder,
    retry_count: int,
    retry_threshold: float,
    clock: Callable[[], float] = time.monotonic,
) -> RetryPolicy:
    """Build the retry policy matching a claim order.

    With an order that never reconsiders retries, transient failures are
    dropped at once; waiting entries could never be claimed.
    """
    if not order.reconsiders_retries:
        retry_count = 0
    return RetryPolicy(retry_count=retry_count, retry_threshold=retry_threshold, clock=clock)
