"""News source adapters: RSS feeds, daily archive feeds, Google News and HTML index pages.

Every adapter returns normalized Article objects with HTML and URLs stripped
from the content. Articles whose cleaned content is shorter than
MIN_CONTENT_LENGTH are dropped here, before the pipeline ever sees them.
"""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Protocol, Sequence
from urllib.parse import quote_plus, urljoin, urlparse

import feedparser
import requests
from bs4 import BeautifulSoup

from dedup import unique_by_url
from models import Article

LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 20
MIN_CONTENT_LENGTH = 100
MIN_PARAGRAPH_LENGTH = 30
MAX_PARAGRAPHS = 15
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_BOILERPLATE_MARKERS = ("READ ALSO", "CLICK HERE", "Vanguard News", "Join our WhatsApp")
_JUNK_SELECTORS = "script, style, iframe, noscript, .sharedaddy, .jp-relatedposts"
_URL_PATTERN = re.compile(r"https?://\S+")
_WHITESPACE = re.compile(r"\s+")


class ArticleSource(Protocol):
    name: str

    def fetch(self) -> list[Article]:
        ...


def strip_urls(text: str) -> str:
    return _WHITESPACE.sub(" ", _URL_PATTERN.sub("", text)).strip()


def clean_content(html: str | None) -> str:
    """Convert article HTML into plain paragraphs without boilerplate or URLs."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.select(_JUNK_SELECTORS):
        tag.decompose()

    paragraphs: list[str] = []
    for node in soup.find_all("p"):
        text = strip_urls(node.get_text(" ", strip=True))
        if len(text) <= MIN_PARAGRAPH_LENGTH:
            continue
        if any(marker in text for marker in _BOILERPLATE_MARKERS):
            continue
        paragraphs.append(text)

    if not paragraphs:
        return strip_urls(soup.get_text(" ", strip=True))[:2000]
    return "\n\n".join(paragraphs[:MAX_PARAGRAPHS])


def clean_title(value: str | None) -> str:
    if not value:
        return ""
    text = BeautifulSoup(value, "html.parser").get_text(" ", strip=True)
    return _WHITESPACE.sub(" ", text).strip()


def _parse_datetime_or_now(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str) and raw.strip():
        value = raw.strip()
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                return datetime.now(UTC)
    else:
        return datetime.now(UTC)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def build_article(
    *,
    title: str,
    content: str,
    url: str,
    published: Any,
    source_name: str,
) -> Article | None:
    """Return an Article, or None when title/url are missing or content is too short."""
    title = clean_title(title)
    url = (url or "").strip()
    if not title or not url:
        return None
    if len(content) < MIN_CONTENT_LENGTH:
        return None
    return Article(
        title=title,
        content=content,
        url=url,
        published_at=_parse_datetime_or_now(published),
        source_name=source_name,
    )


def _http_get(url: str) -> requests.Response:
    return requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=REQUEST_TIMEOUT_SECONDS)


def _entry_html(entry: Any) -> str:
    """Prefer full content:encoded over the short description."""
    content_blocks = entry.get("content") or []
    for block in content_blocks:
        value = block.get("value") if hasattr(block, "get") else None
        if value:
            return value
    return entry.get("summary") or entry.get("description") or ""


def parse_feed_entries(xml: bytes | str, source_name: str) -> list[Article]:
    """Parse RSS/Atom XML into Articles; short or malformed entries are skipped."""
    return articles_from_entries(feedparser.parse(xml).entries or [], source_name)


def articles_from_entries(entries: Sequence[Any], source_name: str) -> list[Article]:
    articles: list[Article] = []
    for entry in entries:
        article = build_article(
            title=entry.get("title") or "",
            content=clean_content(_entry_html(entry)),
            url=entry.get("link") or "",
            published=entry.get("published") or entry.get("updated"),
            source_name=source_name,
        )
        if article is not None:
            articles.append(article)
    return articles


@dataclass
class RssFeedSource:
    """Generic RSS/Atom feed."""

    name: str
    url: str

    def fetch(self) -> list[Article]:
        try:
            response = _http_get(self.url)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.warning("%s feed: request failed, skipping: %s", self.name, exc)
            return []
        articles = parse_feed_entries(response.content, self.name)
        LOGGER.info("%s feed: %s usable articles", self.name, len(articles))
        return articles


@dataclass
class DailyArchiveFeedSource:
    """Paginated per-day WordPress feeds: {base}/YYYY/MM/DD/feed/?paged=N.

    Paging stops at the first 404, non-OK status or empty page.
    """

    name: str
    base_url: str
    days: int = 3
    max_pages: int = 30
    page_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    today: date | None = None

    def feed_url(self, day: date, page: int) -> str:
        base = f"{self.base_url.rstrip('/')}/{day:%Y/%m/%d}/feed/"
        return base if page == 1 else f"{base}?paged={page}"

    def fetch_day(self, day: date) -> list[Article]:
        articles: list[Article] = []
        seen_links: set[str] = set()

        for page in range(1, self.max_pages + 1):
            url = self.feed_url(day, page)
            try:
                response = _http_get(url)
            except requests.RequestException as exc:
                LOGGER.warning("%s: error on %s page %s: %s", self.name, day, page, exc)
                break
            if response.status_code == 404:
                LOGGER.info("%s: %s finished at page %s (no more pages)", self.name, day, page - 1)
                break
            if not response.ok:
                LOGGER.warning("%s: %s page %s returned %s, stopping", self.name, day, page, response.status_code)
                break

            entries = feedparser.parse(response.content).entries or []
            if not entries:
                LOGGER.info("%s: %s finished at page %s (empty feed)", self.name, day, page)
                break
            page_articles = articles_from_entries(entries, self.name)

            new_count = 0
            for article in page_articles:
                if article.url in seen_links:
                    continue
                seen_links.add(article.url)
                articles.append(article)
                new_count += 1
            LOGGER.info("%s: %s page %s: %s articles (%s new)", self.name, day, page, len(page_articles), new_count)
            self.sleep(self.page_delay)

        return articles

    def fetch(self) -> list[Article]:
        today = self.today or datetime.now(UTC).date()
        articles: list[Article] = []
        for days_ago in range(self.days):
            articles.extend(self.fetch_day(today - timedelta(days=days_ago)))
        LOGGER.info("%s: %s articles over %s days", self.name, len(articles), self.days)
        return articles


GOOGLE_NEWS_SEARCH_URL = "https://news.google.com/rss/search"

DEFAULT_BACKFILL_QUERIES: tuple[str, ...] = (
    "Nigeria bandit attack killed",
    "Nigeria boko haram attack",
    "Nigeria kidnapping abducted",
    "Nigeria gunmen killed",
    "ISWAP attack Nigeria",
    "Zamfara Kaduna bandit",
    "Borno terrorist attack",
)


@dataclass
class GoogleNewsSearchSource:
    """Google News RSS search results published after a given date (backfill).

    Search results only carry a short description, so the minimum content
    length is relaxed to the description itself.
    """

    after: date
    queries: Sequence[str] = DEFAULT_BACKFILL_QUERIES
    name: str = "Google News"
    query_delay: float = 0.5
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def search_url(self, query: str) -> str:
        q = quote_plus(f"{query} after:{self.after.isoformat()}")
        return f"{GOOGLE_NEWS_SEARCH_URL}?q={q}&hl=en-NG&gl=NG&ceid=NG:en"

    def fetch(self) -> list[Article]:
        articles: list[Article] = []
        for query in self.queries:
            try:
                response = _http_get(self.search_url(query))
                response.raise_for_status()
            except requests.RequestException as exc:
                LOGGER.warning("Google News: query %r failed: %s", query, exc)
                continue
            parsed = feedparser.parse(response.content)
            count = 0
            for entry in parsed.entries or []:
                description = strip_urls(clean_title(entry.get("summary") or ""))
                title = clean_title(entry.get("title"))
                link = (entry.get("link") or "").strip()
                if not title or not link:
                    continue
                articles.append(
                    Article(
                        title=title,
                        content=description or title,
                        url=link,
                        published_at=_parse_datetime_or_now(entry.get("published")),
                        source_name=self.name,
                    )
                )
                count += 1
            LOGGER.info("Google News: %r -> %s articles", query, count)
            self.sleep(self.query_delay)
        return articles


_INDEX_EXCLUDED_PATHS = ("/category/", "/topics/", "/author/", "/tag/", "/page/")


@dataclass
class HtmlIndexSource:
    """Publisher without a usable feed: scrape index pages, then article pages."""

    name: str
    index_urls: Sequence[str]
    max_articles: int = 25
    page_delay: float = 0.6
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @property
    def domain(self) -> str:
        return urlparse(self.index_urls[0]).netloc.lower().removeprefix("www.")

    def is_article_link(self, href: str) -> bool:
        parsed = urlparse(href)
        host = parsed.netloc.lower().removeprefix("www.")
        if host != self.domain or href.rstrip("/") in {u.rstrip("/") for u in self.index_urls}:
            return False
        if any(part in parsed.path for part in _INDEX_EXCLUDED_PATHS):
            return False
        segments = [segment for segment in parsed.path.split("/") if segment]
        if len(segments) >= 2:
            return True
        # punchng.com/bandits-kill-12-in-zamfara/ style slugs; /about, /contact are not articles
        return len(segments) == 1 and "-" in segments[0]

    def collect_links(self) -> list[str]:
        links: list[str] = []
        for index_url in self.index_urls:
            try:
                response = _http_get(index_url)
                response.raise_for_status()
            except requests.RequestException as exc:
                LOGGER.warning("%s: index %s failed: %s", self.name, index_url, exc)
                continue
            soup = BeautifulSoup(response.text, "html.parser")
            for anchor in soup.find_all("a", href=True):
                href = urljoin(index_url, anchor["href"])
                if self.is_article_link(href) and href not in links:
                    links.append(href)
        return links

    def parse_article_page(self, html: str, url: str) -> Article | None:
        soup = BeautifulSoup(html, "html.parser")
        heading = soup.find("h1")
        title = heading.get_text(" ", strip=True) if heading else ""

        body = soup.select_one(".entry-content, .post-content, article")
        content = clean_content(str(body) if body else html)

        time_tag = soup.find("time", attrs={"datetime": True})
        meta = soup.find("meta", attrs={"property": "article:published_time"})
        published = (time_tag["datetime"] if time_tag else None) or (meta.get("content") if meta else None)

        return build_article(title=title, content=content, url=url, published=published, source_name=self.name)

    def fetch(self) -> list[Article]:
        links = self.collect_links()
        LOGGER.info("%s: found %s article links", self.name, len(links))
        articles: list[Article] = []
        for url in links[: self.max_articles]:
            try:
                response = _http_get(url)
                response.raise_for_status()
            except requests.RequestException as exc:
                LOGGER.debug("%s: article %s failed: %s", self.name, url, exc)
                continue
            article = self.parse_article_page(response.text, url)
            if article is not None:
                articles.append(article)
            self.sleep(self.page_delay)
        LOGGER.info("%s: %s usable articles", self.name, len(articles))
        return articles


def fetch_all(sources: Sequence[ArticleSource], max_workers: int = 4) -> list[Article]:
    """Fetch every source concurrently, join, and drop exact URL repeats.

    A source that raises is logged and contributes nothing; the rest of the
    batch still proceeds.
    """
    if not sources:
        return []

    def _safe_fetch(source: ArticleSource) -> list[Article]:
        try:
            return source.fetch()
        except Exception as exc:  # one broken source must not sink the run
            LOGGER.exception("Source %s failed: %s", source.name, exc)
            return []

    with ThreadPoolExecutor(max_workers=min(max_workers, len(sources))) as pool:
        batches = list(pool.map(_safe_fetch, sources))

    articles = [article for batch in batches for article in batch]
    unique = unique_by_url(articles)
    LOGGER.info("Fetched %s articles from %s sources (%s after URL dedup)", len(articles), len(sources), len(unique))
    return unique
