"""
Run configuration.

The core receives a single immutable ``CrawlConfig`` at startup and does no
I/O to obtain it. Loading helpers for the check script and seed file live
here as well so that every configuration problem surfaces as a
``ConfigError`` before any worker spawns.
"""
import os
import re
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from doonop.constants import (
    DEFAULT_BROWSER,
    DEFAULT_CHECK_SCRIPT,
    DEFAULT_CONCURRENCY,
    DEFAULT_PAGE_LOAD_TIMEOUT_MS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_POLICY,
    DEFAULT_RETRY_THRESHOLD_MS,
    DEFAULT_ROBOT_NAME,
)
from doonop.errors import ConfigError
from doonop.urls import normalize_url

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Environment defaults for options not given on the command line.
    """
    BROWSER = os.getenv("DOONOP_BROWSER", DEFAULT_BROWSER)
    BROWSER_ENDPOINT = os.getenv("DOONOP_BROWSER_ENDPOINT")
    ROBOT_NAME = os.getenv("DOONOP_ROBOT_NAME", DEFAULT_ROBOT_NAME)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


_BROWSER_ALIASES = {
    "firefox": "firefox",
    "geckodriver": "firefox",
    "chrome": "chrome",
    "chromium": "chrome",
    "chromedriver": "chrome",
}

_RETRY_POLICY_ALIASES = {
    "no": "no",
    "off": "no",
    "first": "first",
    "last": "last",
}

FILTER_NAMES = ("domain",)


class ProxySetting(BaseModel):
    """Proxy configuration for the browser."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["sock", "http", "auto-config", "auto-detect", "direct", "system"]
    address: Optional[str] = None
    version: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None


def parse_proxy(value: str) -> ProxySetting:
    """Parse a proxy string such as ``sock;address=host:1080;version=5``.

    Args:
        value: ``kind`` followed by ``;key=value`` pairs

    Returns:
        ProxySetting

    Raises:
        ConfigError: If the kind is unknown or a required key is missing
    """
    parts = [p for p in value.split(";") if p]
    if not parts:
        raise ConfigError(f"Failed to parse proxy setting {value!r}")

    kind, options = parts[0], {}
    for part in parts[1:]:
        key, sep, val = part.partition("=")
        if not sep:
            raise ConfigError(f"Failed to parse proxy setting {value!r}: expected key=value, got {part!r}")
        options[key] = val

    required = {
        "sock": ("address", "version"),
        "http": ("address",),
        "auto-config": ("address",),
        "auto-detect": (),
        "direct": (),
        "system": (),
    }
    if kind not in required:
        raise ConfigError(f"Failed to parse proxy setting {value!r}: unknown kind {kind!r}")

    missing = [key for key in required[kind] if key not in options]
    if missing:
        raise ConfigError(f"Failed to parse proxy setting {value!r}: missing {', '.join(missing)}")

    try:
        return ProxySetting(
            kind=kind,
            address=options.get("address"),
            version=options.get("version"),
            username=options.get("username"),
            password=options.get("password"),
        )
    except ValidationError as e:
        raise ConfigError(f"Failed to parse proxy setting {value!r}: {e}") from e


def parse_filter(value: str) -> tuple[str, str]:
    """Split a ``name=value`` filter rule.

    Raises:
        ConfigError: If the rule is malformed or the name is unknown
    """
    name, sep, rule = value.partition("=")
    if not sep or not rule:
        raise ConfigError(f"Failed to parse a filter {value!r}: expected name=value")
    if name not in FILTER_NAMES:
        raise ConfigError(f"Failed to parse a filter {value!r}: unknown filter {name!r}")
    return name, rule


class CrawlConfig(BaseModel):
    """
    Immutable configuration of one crawl run.

    Validated by Pydantic; use ``CrawlConfig.build`` to get a ``ConfigError``
    instead of a ``ValidationError``.
    """

    model_config = ConfigDict(frozen=True)

    browser: Literal["firefox", "chrome"] = Field(
        default=DEFAULT_BROWSER,
        description="Browser engine driven by each worker"
    )

    browser_endpoint: Optional[str] = Field(
        default=None,
        description="Remote browser server address; a local browser is launched when unset"
    )

    headless: bool = Field(default=True, description="Run a launched browser headless")

    concurrency: int = Field(
        default=DEFAULT_CONCURRENCY,
        description="Number of workers, one browser session each",
        ge=1,
    )

    check_script: str = Field(
        default=DEFAULT_CHECK_SCRIPT,
        description="JavaScript function body run on each page; null means no artifact"
    )

    filters: tuple[str, ...] = Field(
        default=(),
        description="Scope rules such as domain=example.com"
    )

    ignore: tuple[str, ...] = Field(
        default=(),
        description="Regular expressions of URLs to skip"
    )

    limit: Optional[int] = Field(
        default=None,
        description="Stop after this many artifacts",
        ge=1,
    )

    page_load_timeout_ms: int = Field(default=DEFAULT_PAGE_LOAD_TIMEOUT_MS, ge=1)

    proxy: Optional[ProxySetting] = None

    retry_policy: Literal["no", "first", "last"] = Field(
        default=DEFAULT_RETRY_POLICY,
        description="Whether failed URLs are retried before or after fresh ones"
    )

    retry_threshold_ms: int = Field(default=DEFAULT_RETRY_THRESHOLD_MS, ge=0)

    retry_count: int = Field(default=DEFAULT_RETRY_COUNT, ge=0)

    use_robots_txt: bool = False

    robot_name: str = DEFAULT_ROBOT_NAME

    seed_urls: tuple[str, ...] = ()

    poll_interval_ms: int = Field(default=DEFAULT_POLL_INTERVAL_MS, ge=1)

    @field_validator("browser", mode="before")
    @classmethod
    def _browser_alias(cls, value):
        if isinstance(value, str):
            return _BROWSER_ALIASES.get(value.lower(), value)
        return value

    @field_validator("retry_policy", mode="before")
    @classmethod
    def _retry_policy_alias(cls, value):
        if isinstance(value, str):
            return _RETRY_POLICY_ALIASES.get(value.lower(), value)
        return value

    @field_validator("proxy", mode="before")
    @classmethod
    def _proxy_string(cls, value):
        if isinstance(value, str):
            try:
                return parse_proxy(value)
            except ConfigError as e:
                raise ValueError(str(e)) from e
        return value

    @field_validator("filters")
    @classmethod
    def _valid_filters(cls, value):
        for rule in value:
            try:
                parse_filter(rule)
            except ConfigError as e:
                raise ValueError(str(e)) from e
        return value

    @field_validator("ignore")
    @classmethod
    def _valid_regexes(cls, value):
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Failed to parse regex {pattern!r} in an ignore list: {e}") from e
        return value

    @field_validator("seed_urls")
    @classmethod
    def _valid_seeds(cls, value):
        for url in value:
            if normalize_url(url) is None:
                raise ValueError(f"Seed {url!r} is not an absolute http(s) URL")
        return value

    @classmethod
    def build(cls, **options) -> "CrawlConfig":
        """Create a config, reporting problems as ConfigError."""
        try:
            return cls(**options)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @property
    def domains(self) -> list[str]:
        """All ``domain=`` rules squashed into one allow-list."""
        return [rule for name, rule in map(parse_filter, self.filters) if name == "domain"]

    @property
    def ignore_patterns(self) -> list[re.Pattern]:
        return [re.compile(pattern) for pattern in self.ignore]

    @property
    def page_load_timeout(self) -> float:
        """Page load timeout in seconds."""
        return self.page_load_timeout_ms / 1000

    @property
    def retry_threshold(self) -> float:
        return self.retry_threshold_ms / 1000

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000


def load_check_script(path: Optional[str]) -> str:
    """Read the check script, or return the default one.

    Raises:
        ConfigError: If the file cannot be read
    """
    if path is None:
        return DEFAULT_CHECK_SCRIPT
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read a check file {path}: {e}") from e


def load_seed_file(path: str) -> list[str]:
    """Read seed URLs, one per line.

    Blank lines and lines starting with ``#`` are skipped.

    Raises:
        ConfigError: If the file cannot be read
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to get urls from a seed file {path}: {e}") from e

    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
