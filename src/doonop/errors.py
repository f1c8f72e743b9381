"""Exception types shared across the crawler."""

from enum import Enum


class FailureKind(Enum):
    """How a failed page visit is treated by the scheduler."""
    TRANSIENT = "transient"  # retried per retry policy
    PERMANENT = "permanent"  # dropped without retry
    FATAL = "fatal"          # the browser session is unusable


class DoonopError(Exception):
    """Base class for crawler errors."""


class ConfigError(DoonopError):
    """Raised when the run configuration is invalid.

    Always raised before any worker is spawned.
    """


class CrawlFailure(DoonopError):
    """A page visit failed at the browser boundary."""

    def __init__(self, kind: FailureKind, url: str, message: str):
        self.kind = kind
        self.url = url
        self.message = message
        super().__init__(f"{kind.value} failure for {url}: {message}")


class RobotsUnavailable(DoonopError):
    """robots.txt for an origin could not be fetched."""

    def __init__(self, origin: str, reason: str):
        self.origin = origin
        self.reason = reason
        super().__init__(f"robots.txt unavailable for {origin}: {reason}")


class PoolExhaustedError(DoonopError):
    """Every worker died; the run cannot continue."""


class SessionError(DoonopError):
    """A browser session could not be created."""
