# src/doonop/constants.py
"""Centralized defaults for the crawler.

User-facing settings live in config.py; these are the values the
configuration falls back to.
"""

# =============================================================================
# Browser
# =============================================================================

DEFAULT_BROWSER = "firefox"

# Page load timeout (ms) after which a URL is treated as a transient failure
DEFAULT_PAGE_LOAD_TIMEOUT_MS = 10_000

# Time allowed to establish a connection to a remote browser server (ms)
BROWSER_CONNECT_TIMEOUT_MS = 3_000

# Script used when no check file is given: every visited page yields its URL
DEFAULT_CHECK_SCRIPT = "return window.location.href"

# =============================================================================
# Scheduling
# =============================================================================

DEFAULT_CONCURRENCY = 1

DEFAULT_RETRY_POLICY = "first"

# Number of retries allowed for a URL after its first attempt
DEFAULT_RETRY_COUNT = 3

# Fixed delay (ms) before a failed URL becomes claimable again
DEFAULT_RETRY_THRESHOLD_MS = 10_000

# Interval (ms) at which idle workers and the coordinator re-check state
DEFAULT_POLL_INTERVAL_MS = 100

# Lower bound (s) on idle waits so an idle worker never spins
MIN_IDLE_WAIT_SECONDS = 0.001

# =============================================================================
# robots.txt / sitemaps
# =============================================================================

DEFAULT_ROBOT_NAME = "DoonopRobot"

ROBOTS_FETCH_TIMEOUT_SECONDS = 5.0

SITEMAP_FETCH_TIMEOUT_SECONDS = 30.0

# Maximum nesting of sitemap index files followed
MAX_SITEMAP_DEPTH = 3
