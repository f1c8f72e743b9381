"""Command-line interface for the doonop crawler."""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from doonop.config import CrawlConfig, load_check_script, load_seed_file, settings
from doonop.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_PAGE_LOAD_TIMEOUT_MS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_POLICY,
    DEFAULT_RETRY_THRESHOLD_MS,
)
from doonop.crawler import Crawler
from doonop.errors import ConfigError, PoolExhaustedError
from doonop.logging_config import setup_logging
from doonop.models import CrawlReport
from doonop.robots import RobotsPolicy
from doonop.sitemap import SitemapParser, discover_sitemap_urls


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="doonop",
        description=(
            "Crawl a site in a real browser and run a JavaScript check on every page. "
            "Values the check returns are printed as JSON lines."
        ),
    )
    parser.add_argument("urls", nargs="*", help="Site URLs the crawl starts from")
    parser.add_argument(
        "-c", "--check-file",
        help="JavaScript file whose non-null return value is saved for each page "
             "(default: the page URL)",
    )
    parser.add_argument(
        "-j", dest="concurrency", type=int, default=DEFAULT_CONCURRENCY,
        help=f"Number of concurrent workers (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument("-l", "--limit", type=int, help="Stop after this many artifacts")
    parser.add_argument(
        "-p", "--page-load-timeout", type=int, default=DEFAULT_PAGE_LOAD_TIMEOUT_MS,
        help=f"Page load timeout in milliseconds (default: {DEFAULT_PAGE_LOAD_TIMEOUT_MS})",
    )
    parser.add_argument(
        "-i", "--ignore", action="append", default=[],
        help="Regex of URLs to skip; may be repeated",
    )
    parser.add_argument(
        "-f", "--filter", action="append", default=[],
        help='Crawl restriction rule, e.g. -f "domain=example.com"; may be repeated',
    )
    parser.add_argument("-s", "--seed-file", help="File with one seed URL per line")
    parser.add_argument(
        "-b", "--browser", default=None,
        help=f"Browser to drive: firefox or chrome (default: {settings.BROWSER})",
    )
    parser.add_argument(
        "-w", "--webdriver-url", default=None,
        help="Address of a remote browser server; a local browser is launched when omitted",
    )
    parser.add_argument(
        "--no-headless", dest="headless", action="store_false",
        help="Show the browser window of a launched browser",
    )
    parser.add_argument(
        "--retry-policy", default=DEFAULT_RETRY_POLICY,
        help="no: never retry; first: retries before new URLs; last: new URLs before retries "
             f"(default: {DEFAULT_RETRY_POLICY})",
    )
    parser.add_argument(
        "--retry_threshold", "--retry-threshold", dest="retry_threshold",
        type=int, default=DEFAULT_RETRY_THRESHOLD_MS,
        help=f"Milliseconds before a failed URL may be retried (default: {DEFAULT_RETRY_THRESHOLD_MS})",
    )
    parser.add_argument(
        "--retry-count", type=int, default=DEFAULT_RETRY_COUNT,
        help=f"Retries allowed per URL (default: {DEFAULT_RETRY_COUNT})",
    )
    parser.add_argument(
        "--proxy",
        help='Proxy setting, e.g. "sock;address=proxy.example.net:1080;version=5". '
             "Types: sock, http, auto-config, auto-detect, direct, system",
    )
    parser.add_argument(
        "--use_robots_txt", "--use-robots-txt", dest="use_robots_txt", action="store_true",
        help="Respect robots.txt",
    )
    parser.add_argument(
        "--robot", default=None,
        help=f"Robot name matched in robots.txt (default: {settings.ROBOT_NAME})",
    )
    parser.add_argument(
        "--sitemap", action="append", default=[],
        help="Sitemap whose URLs are added to the seeds; may be repeated",
    )
    parser.add_argument(
        "--discover-sitemaps", action="store_true",
        help="Add URLs from sitemaps announced in the seeds' robots.txt",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument("--log-file", help="Write logs to file in addition to stderr")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CrawlConfig:
    """Turn parsed arguments into a validated configuration.

    Raises:
        ConfigError: If any option, the check file or the seed file is invalid
    """
    seeds = list(args.urls)
    if args.seed_file:
        seeds.extend(load_seed_file(args.seed_file))

    return CrawlConfig.build(
        browser=args.browser or settings.BROWSER,
        browser_endpoint=args.webdriver_url or settings.BROWSER_ENDPOINT,
        headless=args.headless,
        concurrency=args.concurrency,
        check_script=load_check_script(args.check_file),
        filters=tuple(args.filter),
        ignore=tuple(args.ignore),
        limit=args.limit,
        page_load_timeout_ms=args.page_load_timeout,
        proxy=args.proxy,
        retry_policy=args.retry_policy,
        retry_threshold_ms=args.retry_threshold,
        retry_count=args.retry_count,
        use_robots_txt=args.use_robots_txt,
        robot_name=args.robot or settings.ROBOT_NAME,
        seed_urls=tuple(seeds),
    )


async def collect_sitemap_seeds(
    crawler: Crawler, sitemaps: List[str], discover: bool
) -> List[str]:
    """URLs from the given sitemaps and, if asked, from the ones robots.txt announces."""
    config = crawler.config
    sitemap_urls = list(sitemaps)
    if discover:
        robots = crawler.filters.robots or RobotsPolicy(config.robot_name)
        sitemap_urls.extend(await discover_sitemap_urls(list(config.seed_urls), robots))

    parser = SitemapParser(agent=config.robot_name)
    urls: List[str] = []
    for sitemap_url in sitemap_urls:
        urls.extend(await parser.parse(sitemap_url))
    return urls


async def run_crawl(crawler: Crawler, args: argparse.Namespace) -> CrawlReport:
    """Run the crawl, stopping gracefully on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, crawler.request_stop)
        except NotImplementedError:
            # Not available on Windows event loops
            pass

    extra_seeds = await collect_sitemap_seeds(crawler, args.sitemap, args.discover_sitemaps)
    return await crawler.run(extra_seeds)


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)

    setup_logging(level=args.log_level, log_file=args.log_file)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    crawler = Crawler(config)
    try:
        report = asyncio.run(run_crawl(crawler, args))
    except PoolExhaustedError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(crawler.statistics().summary_line(), file=sys.stderr)
        sys.exit(1)

    if report.interrupted:
        print("Crawl interrupted", file=sys.stderr)
    print(report.statistics.summary_line(), file=sys.stderr)


if __name__ == "__main__":
    main()
