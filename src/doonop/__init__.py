"""Concurrent browser-driven web crawler with pluggable in-page checks."""

__version__ = "0.1.0"

from doonop.config import CrawlConfig, ProxySetting, settings
from doonop.crawler import Crawler, crawl
from doonop.errors import (
    ConfigError,
    CrawlFailure,
    DoonopError,
    FailureKind,
    PoolExhaustedError,
    RobotsUnavailable,
    SessionError,
)
from doonop.filters import FilterChain
from doonop.frontier import Frontier
from doonop.models import (
    Artifact,
    CrawlReport,
    CrawlStatistics,
    DropRecord,
    Extracted,
    NoArtifact,
    Task,
)
from doonop.robots import RobotsPolicy
from doonop.sink import ArtifactSink
from doonop.sitemap import SitemapParser

__all__ = [
    "Crawler",
    "crawl",
    "CrawlConfig",
    "ProxySetting",
    "settings",
    "Frontier",
    "FilterChain",
    "ArtifactSink",
    "RobotsPolicy",
    "SitemapParser",
    "Task",
    "Artifact",
    "Extracted",
    "NoArtifact",
    "DropRecord",
    "CrawlStatistics",
    "CrawlReport",
    "FailureKind",
    "DoonopError",
    "ConfigError",
    "CrawlFailure",
    "RobotsUnavailable",
    "PoolExhaustedError",
    "SessionError",
]
