"""Data models for the crawl scheduler."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from doonop.errors import FailureKind


class TaskOrigin(Enum):
    """How a URL entered the frontier."""
    SEED = "seed"
    DISCOVERED = "discovered"


class UrlState(Enum):
    """Bucket a known URL currently belongs to."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RETRY_WAITING = "retry_waiting"
    COMPLETED = "completed"
    DROPPED = "dropped"


@dataclass(frozen=True)
class Task:
    """A unit of crawl work.

    Timestamps come from the frontier clock (monotonic seconds), not wall
    time; they are only compared with each other.
    """

    url: str
    attempt: int = 0
    first_seen_at: Optional[float] = None
    last_attempt_at: Optional[float] = None
    origin: TaskOrigin = TaskOrigin.DISCOVERED
    not_before: Optional[float] = None

    def next_attempt(self, failed_at: float, not_before: float) -> "Task":
        """Copy of this task scheduled for another attempt."""
        return replace(
            self,
            attempt=self.attempt + 1,
            last_attempt_at=failed_at,
            not_before=not_before,
        )


@dataclass(frozen=True)
class DiscoveryContext:
    """Where a candidate URL came from."""
    origin: TaskOrigin = TaskOrigin.DISCOVERED
    parent_url: Optional[str] = None


@dataclass(frozen=True)
class NoArtifact:
    """The check script returned null: the page was only visited."""


@dataclass(frozen=True)
class Extracted:
    """The check script returned a JSON value."""
    value: Any


ExtractionResult = Union[NoArtifact, Extracted]

NO_ARTIFACT = NoArtifact()


@dataclass(frozen=True)
class Artifact:
    """A value extracted from one page, immutable once emitted."""

    url: str
    data: Any
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> dict:
        return {
            "url": self.url,
            "timestamp": self.captured_at.isoformat(),
            "data": self.data,
        }


@dataclass(frozen=True)
class DropRecord:
    """A URL that was permanently abandoned."""

    url: str
    attempts: int
    kind: FailureKind
    reason: str
    dropped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "attempts": self.attempts,
            "kind": self.kind.value,
            "reason": self.reason,
            "dropped_at": self.dropped_at.isoformat(),
        }


@dataclass
class CrawlStatistics:
    """Counters collected over one run."""
    visited: int = 0
    collected: int = 0
    errors: int = 0
    retries: int = 0
    ignored: int = 0
    dropped: int = 0
    discarded: int = 0

    def summary_line(self) -> str:
        return (
            f"Statistics: visited {self.visited}, collected {self.collected}, "
            f"errors {self.errors}, retries {self.retries}"
        )


@dataclass
class WorkerFailure:
    """A worker that stopped because its browser session died."""
    worker_id: int
    reason: str


@dataclass
class CrawlReport:
    """Outcome of a crawl run."""
    statistics: CrawlStatistics = field(default_factory=CrawlStatistics)
    dropped: list[DropRecord] = field(default_factory=list)
    worker_failures: list[WorkerFailure] = field(default_factory=list)
    limit_reached: bool = False
    interrupted: bool = False
