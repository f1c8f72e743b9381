"""Tests for configuration parsing and validation."""

import pytest

from doonop.config import (
    CrawlConfig,
    load_check_script,
    load_seed_file,
    parse_filter,
    parse_proxy,
)
from doonop.constants import DEFAULT_CHECK_SCRIPT
from doonop.errors import ConfigError


class TestCrawlConfig:
    """Test cases for CrawlConfig."""

    def test_defaults(self):
        """Test default configuration values."""
        config = CrawlConfig()

        assert config.browser == "firefox"
        assert config.concurrency == 1
        assert config.retry_policy == "first"
        assert config.retry_count == 3
        assert config.retry_threshold_ms == 10_000
        assert config.page_load_timeout_ms == 10_000
        assert config.limit is None
        assert config.use_robots_txt is False
        assert config.robot_name == "DoonopRobot"
        assert config.check_script == DEFAULT_CHECK_SCRIPT

    def test_unit_conversions(self):
        config = CrawlConfig(page_load_timeout_ms=2500, retry_threshold_ms=500, poll_interval_ms=20)

        assert config.page_load_timeout == 2.5
        assert config.retry_threshold == 0.5
        assert config.poll_interval == 0.02

    @pytest.mark.parametrize("name,expected", [
        ("chrome", "chrome"),
        ("Chromium", "chrome"),
        ("chromedriver", "chrome"),
        ("geckodriver", "firefox"),
        ("FIREFOX", "firefox"),
    ])
    def test_browser_aliases(self, name, expected):
        assert CrawlConfig(browser=name).browser == expected

    def test_retry_policy_aliases(self):
        assert CrawlConfig(retry_policy="Last").retry_policy == "last"
        assert CrawlConfig(retry_policy="off").retry_policy == "no"

    def test_unknown_browser_rejected(self):
        with pytest.raises(ConfigError):
            CrawlConfig.build(browser="netscape")

    def test_unknown_retry_policy_rejected(self):
        with pytest.raises(ConfigError):
            CrawlConfig.build(retry_policy="sometimes")

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ConfigError):
            CrawlConfig.build(concurrency=0)

    def test_zero_limit_rejected(self):
        with pytest.raises(ConfigError):
            CrawlConfig.build(limit=0)

    def test_invalid_regex_rejected(self):
        with pytest.raises(ConfigError, match="regex"):
            CrawlConfig.build(ignore=("(unclosed",))

    def test_invalid_seed_rejected(self):
        with pytest.raises(ConfigError):
            CrawlConfig.build(seed_urls=("not a url",))

    def test_domains_squashed(self):
        config = CrawlConfig(filters=("domain=a.com", "domain=b.com"))
        assert config.domains == ["a.com", "b.com"]

    def test_ignore_patterns_compiled(self):
        config = CrawlConfig(ignore=(r"\.pdf$", "/admin"))
        patterns = config.ignore_patterns

        assert len(patterns) == 2
        assert patterns[0].search("/files/a.pdf")

    def test_proxy_string_parsed(self):
        config = CrawlConfig(proxy="http;address=proxy.local:3128")

        assert config.proxy.kind == "http"
        assert config.proxy.address == "proxy.local:3128"

    def test_config_is_frozen(self):
        config = CrawlConfig()
        with pytest.raises(Exception):
            config.concurrency = 4


class TestParseProxy:
    """Test cases for parse_proxy."""

    def test_sock_proxy(self):
        proxy = parse_proxy("sock;address=https://example.net;version=5;password=123;username=qwe")

        assert proxy.kind == "sock"
        assert proxy.address == "https://example.net"
        assert proxy.version == 5
        assert proxy.username == "qwe"
        assert proxy.password == "123"

    def test_kinds_without_options(self):
        for kind in ("auto-detect", "direct", "system"):
            assert parse_proxy(kind).kind == kind

    def test_auto_config_requires_address(self):
        with pytest.raises(ConfigError, match="address"):
            parse_proxy("auto-config")

    def test_sock_requires_version(self):
        with pytest.raises(ConfigError, match="version"):
            parse_proxy("sock;address=host:1080")

    def test_unknown_kind(self):
        with pytest.raises(ConfigError, match="unknown kind"):
            parse_proxy("carrier-pigeon;address=x")

    def test_malformed_option(self):
        with pytest.raises(ConfigError):
            parse_proxy("http;address")

    def test_empty(self):
        with pytest.raises(ConfigError):
            parse_proxy("")


class TestParseFilter:
    """Test cases for parse_filter."""

    def test_domain_filter(self):
        assert parse_filter("domain=example.com") == ("domain", "example.com")

    def test_missing_value(self):
        with pytest.raises(ConfigError):
            parse_filter("domain")

    def test_unknown_filter(self):
        with pytest.raises(ConfigError, match="unknown filter"):
            parse_filter("path=/blog")


class TestLoaders:
    """Test cases for check script and seed file loading."""

    def test_default_check_script(self):
        assert load_check_script(None) == DEFAULT_CHECK_SCRIPT

    def test_check_script_from_file(self, tmp_path):
        path = tmp_path / "check.js"
        path.write_text("return document.title")

        assert load_check_script(str(path)) == "return document.title"

    def test_missing_check_script(self, tmp_path):
        with pytest.raises(ConfigError, match="check file"):
            load_check_script(str(tmp_path / "missing.js"))

    def test_seed_file(self, tmp_path):
        path = tmp_path / "seeds.txt"
        path.write_text("https://a.com\n\n# comment\n  https://b.com/x  \n")

        assert load_seed_file(str(path)) == ["https://a.com", "https://b.com/x"]

    def test_missing_seed_file(self, tmp_path):
        with pytest.raises(ConfigError, match="seed file"):
            load_seed_file(str(tmp_path / "missing.txt"))
