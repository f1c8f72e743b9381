"""Sitemap parser used to seed a crawl."""

import logging
import re
from typing import List, Optional
from xml.etree import ElementTree as ET

import httpx

from doonop.constants import MAX_SITEMAP_DEPTH, SITEMAP_FETCH_TIMEOUT_SECONDS
from doonop.robots import RobotsPolicy

logger = logging.getLogger(__name__)

SITEMAP_NS = "{http://www.sitemaps.org/schemas/sitemap/0.9}"


class SitemapParser:
    """
    Parse XML sitemaps to extract URLs for crawling.

    Supports:
    - Standard sitemap.xml files
    - Sitemap index files, followed up to ``MAX_SITEMAP_DEPTH`` levels
    """

    def __init__(
        self,
        agent: Optional[str] = None,
        timeout: float = SITEMAP_FETCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the sitemap parser.

        Args:
            agent: User-Agent header sent with requests
            timeout: Fetch timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.agent = agent
        self.timeout = timeout
        self._transport = transport

    async def parse(self, sitemap_url: str, max_urls: Optional[int] = None) -> List[str]:
        """
        Parse a sitemap and return its URLs in document order.

        Args:
            sitemap_url: URL to the sitemap.xml or sitemap index
            max_urls: Maximum number of URLs to return (None for all)

        Returns:
            List of URLs found in the sitemap; empty if it could not be fetched
        """
        urls: List[str] = []
        headers = {"Accept": "application/xml, text/xml, */*"}
        if self.agent:
            headers["User-Agent"] = self.agent

        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, headers=headers, transport=self._transport
        ) as client:
            await self._fetch_and_parse(client, sitemap_url, urls, max_urls, depth=0)
        return urls

    async def _fetch_and_parse(
        self,
        client: httpx.AsyncClient,
        sitemap_url: str,
        urls: List[str],
        max_urls: Optional[int],
        depth: int,
    ) -> None:
        """Recursively fetch and parse sitemaps."""
        if depth > MAX_SITEMAP_DEPTH:
            logger.warning(f"Sitemap nesting too deep, skipping {sitemap_url}")
            return
        if max_urls and len(urls) >= max_urls:
            return

        logger.info(f"Fetching sitemap: {sitemap_url}")
        try:
            response = await client.get(sitemap_url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Failed to fetch sitemap {sitemap_url}: {e}")
            return

        try:
            root = ET.fromstring(_clean_xml_content(response.text))
        except ET.ParseError as e:
            logger.error(f"Failed to parse sitemap XML from {sitemap_url}: {e}")
            return

        # Get the root tag without namespace
        root_tag = root.tag.split("}")[-1]
        if root_tag == "sitemapindex":
            for child_url in _locations(root, "sitemap"):
                logger.info(f"Found child sitemap: {child_url}")
                await self._fetch_and_parse(client, child_url, urls, max_urls, depth + 1)
        elif root_tag == "urlset":
            count = 0
            for url in _locations(root, "url"):
                if max_urls and len(urls) >= max_urls:
                    logger.info(f"Reached max URLs limit ({max_urls})")
                    break
                if url not in urls:
                    urls.append(url)
                    count += 1
            logger.info(f"Extracted {count} URLs from {sitemap_url}")
        else:
            logger.warning(f"Unknown sitemap root element: {root_tag}")


def _locations(root: ET.Element, entry_tag: str) -> List[str]:
    """``<loc>`` texts of the direct ``entry_tag`` children of ``root``."""
    locations = []
    for entry in root:
        if entry.tag.split("}")[-1] != entry_tag:
            continue
        loc = entry.find(f"{SITEMAP_NS}loc")
        if loc is None:
            loc = entry.find("loc")
        if loc is not None and loc.text and loc.text.strip():
            locations.append(loc.text.strip())
    return locations


def _clean_xml_content(content: str) -> str:
    """Remove a DOCTYPE and surrounding whitespace."""
    content = re.sub(r"<!DOCTYPE[^>]*>", "", content)
    return content.strip()


async def discover_sitemap_urls(site_urls: List[str], robots: RobotsPolicy) -> List[str]:
    """
    Sitemap locations announced in the robots.txt of each site's origin.

    Args:
        site_urls: URLs whose origins are inspected
        robots: Policy whose cached robots.txt files are read

    Returns:
        Unique sitemap URLs, in discovery order
    """
    found: List[str] = []
    for url in site_urls:
        for sitemap_url in await robots.sitemaps(url):
            if sitemap_url not in found:
                found.append(sitemap_url)
    if not found:
        logger.info("No sitemaps announced in robots.txt")
    return found
