"""
Page fetching and structural hint extraction for tool discovery.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from .errors import ExternalServiceUnavailable
from .models import PageHints

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

PRICING_KEYWORDS = (
    "pricing", "price", "plan", "free", "premium", "pro", "enterprise",
    "$", "€", "/month", "/year", "subscribe", "trial",
)
MAX_PRICING_HINTS = 5
MAX_SUBHEADLINES = 5
BODY_TEXT_LIMIT = 3000
RAW_SNIPPET_LIMIT = 2000

LISTING_ITEM_SELECTOR = ".app-listing, .alternativeList__item, [data-app-slug]"
LISTING_NAME_SELECTOR = ".name, .app-name, h2, h3"
LISTING_DESC_SELECTOR = ".description, .app-description, p"

_WS_RE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def _meta(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return str(tag.get("content") or "").strip()


def extract_pricing_hints(soup: BeautifulSoup) -> str:
    """Short element texts that mention a pricing cue, deduplicated."""
    hints: List[str] = []
    for element in soup.find_all(True):
        text = _collapse(element.get_text(" "))
        if not 10 < len(text) < 200:
            continue
        lowered = text.lower()
        if any(keyword in lowered for keyword in PRICING_KEYWORDS) and text not in hints:
            hints.append(text)
            if len(hints) >= MAX_PRICING_HINTS:
                break
    return " | ".join(hints)


def extract_page_hints(html: str, url: str) -> PageHints:
    """Pull title, descriptions, headings and pricing cues out of a page."""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = _collapse(title_tag.get_text()) if title_tag else ""
    description = _meta(soup, name="description") or _meta(soup, property="og:description")

    h1 = soup.find("h1")
    subheadlines = [
        _collapse(h2.get_text(" ")) for h2 in soup.find_all("h2", limit=MAX_SUBHEADLINES)
    ]

    body = soup.find("body")
    body_text = _collapse(body.get_text(" ") if body else soup.get_text(" "))[:BODY_TEXT_LIMIT]

    return PageHints(
        url=url,
        title=title or _meta(soup, property="og:title"),
        description=description,
        headline=_collapse(h1.get_text(" ")) if h1 else "",
        subheadlines=[s for s in subheadlines if s],
        pricing_hints=extract_pricing_hints(soup),
        raw_snippet=body_text[:RAW_SNIPPET_LIMIT],
    )


def parse_listing(html: str, base_url: str, source: str = "listing") -> List[PageHints]:
    """Candidate tools from a directory listing page."""
    soup = BeautifulSoup(html, "html.parser")
    found: List[PageHints] = []
    for item in soup.select(LISTING_ITEM_SELECTOR):
        name_el = item.select_one(LISTING_NAME_SELECTOR)
        name = _collapse(name_el.get_text(" ")) if name_el else ""
        if not 1 < len(name) < 50:
            continue
        desc_el = item.select_one(LISTING_DESC_SELECTOR)
        link = item.find("a", href=True)
        found.append(PageHints(
            url=urljoin(base_url, link["href"]) if link else "",
            name=name,
            description=_collapse(desc_el.get_text(" ")) if desc_el else "",
            source=source,
        ))
    return found


class PageScraper:
    """Fetches pages with bounded timeouts."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        page_timeout: float = 15.0,
        listing_timeout: float = 10.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            headers=BROWSER_HEADERS, follow_redirects=True, max_redirects=5
        )
        self.page_timeout = page_timeout
        self.listing_timeout = listing_timeout

    async def fetch(self, url: str, timeout: float) -> str:
        try:
            response = await self._client.get(url, headers=BROWSER_HEADERS, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Timed out fetching %s", url)
            raise ExternalServiceUnavailable(f"timed out fetching {url}") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning("HTTP %s fetching %s", exc.response.status_code, url)
            raise ExternalServiceUnavailable(
                f"HTTP {exc.response.status_code} fetching {url}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch %s: %s", url, exc)
            raise ExternalServiceUnavailable(f"could not fetch {url}") from exc
        return response.text

    async def analyze_url(self, url: str) -> PageHints:
        """Fetch *url* and extract its hints.  Raises ExternalServiceUnavailable."""
        logger.info("Analyzing tool URL: %s", url)
        html = await self.fetch(url, self.page_timeout)
        return extract_page_hints(html, url)

    async def fetch_listing(self, listing_url: str) -> List[PageHints]:
        """Candidates from a directory listing; empty when the listing is unreachable."""
        try:
            html = await self.fetch(listing_url, self.listing_timeout)
        except ExternalServiceUnavailable as exc:
            logger.warning("Directory listing unavailable: %s", exc)
            return []
        found = parse_listing(html, listing_url, source=httpx.URL(listing_url).host)
        logger.info("Found %d potential tools at %s", len(found), listing_url)
        return found

    async def close(self) -> None:
        await self._client.aclose()
