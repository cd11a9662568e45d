"""
Feed parser: turns fetched payloads into CrawlInput lists, per source kind.

  - feed / news_search: RSS or Atom via feedparser
  - webpage: one synthetic item from <title> + body text via BeautifulSoup

Every returned item has a non-empty title and an absolute URL.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlencode, urljoin

import feedparser
from bs4 import BeautifulSoup

from ..config import get_settings
from ..news.quality import clean_text
from ..schemas import CrawlInput, SourceDescriptor, SourceKind

logger = logging.getLogger(__name__)

UNTITLED_FEED_ITEM = "Untitled feed item"
THIN_BODY_CHARS = 200
WEBPAGE_SUMMARY_CHARS = 500

# Google News RSS recency filter appended to every news_search query
NEWS_SEARCH_RECENCY = "when:30d"


def normalize_url(raw: Optional[str], base: str) -> str:
    """Return an absolute URL, resolving relative links against `base`."""
    if not raw:
        return ""
    trimmed = raw.strip()
    if not trimmed:
        return ""
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    try:
        return urljoin(base, trimmed)
    except ValueError:
        return trimmed


def build_news_search_url(source: SourceDescriptor) -> str:
    """Build the search-feed URL for a news_search source from its query."""
    if not source.search_query:
        return source.url
    params = {
        "q": f"{source.search_query} {NEWS_SEARCH_RECENCY}",
        "hl": "en-US",
        "gl": "US",
        "ceid": "US:en",
    }
    return f"{source.url}?{urlencode(params)}"


def source_registry_url(source: SourceDescriptor) -> str:
    """URL that identifies a source in the registry.

    Search sources share an endpoint, so their query is part of the URL.
    """
    if source.kind == SourceKind.NEWS_SEARCH.value:
        return build_news_search_url(source)
    if source.kind == SourceKind.SOCIAL_SEARCH.value and source.search_query:
        return f"{source.url}?{urlencode({'q': source.search_query})}"
    return source.url


# ══════════════════════════════════════════════════════════════════════════════
# FEEDS
# ══════════════════════════════════════════════════════════════════════════════

def _entry_link(entry) -> str:
    link = entry.get("link") or ""
    if link:
        return link
    for candidate in entry.get("links", []) or []:
        href = candidate.get("href")
        if href:
            return href
    return ""


def _entry_description(entry) -> str:
    for key in ("summary", "description"):
        value = clean_text(entry.get(key))
        if value:
            return value
    for block in entry.get("content", []) or []:
        value = clean_text(block.get("value"))
        if value:
            return value
    return ""


def parse_feed_text(feed_text: str, source_url: str, max_items: Optional[int] = None) -> List[CrawlInput]:
    """Parse an RSS/Atom payload into at most `max_items` CrawlInputs.

    Entries with no URL or a repeated (url, title) pair are dropped; the first
    occurrence wins.
    """
    if max_items is None:
        max_items = get_settings().max_items_per_feed

    feed = feedparser.parse(feed_text)
    if feed.bozo and not feed.entries:
        logger.debug(f"[FEED] {source_url}: unparseable payload ({feed.get('bozo_exception')})")

    items: List[CrawlInput] = []
    seen = set()
    for entry in feed.entries:
        if len(items) >= max_items:
            break

        title = clean_text(entry.get("title")) or UNTITLED_FEED_ITEM
        url = normalize_url(_entry_link(entry), source_url)
        if not url:
            continue

        key = f"{url.lower()}::{title.lower()}"
        if key in seen:
            continue
        seen.add(key)

        description = _entry_description(entry)
        published = entry.get("published") or entry.get("updated") or None
        items.append(CrawlInput(
            title=title,
            url=url,
            summary=description or title,
            raw_text=f"{title}. {description}".strip(),
            published_at=published,
        ))

    return items


# ══════════════════════════════════════════════════════════════════════════════
# WEB PAGES
# ══════════════════════════════════════════════════════════════════════════════

def parse_web_page(page_html: str, source: SourceDescriptor, max_chars: Optional[int] = None) -> List[CrawlInput]:
    """Synthesize one CrawlInput from a page's <title> and body text.

    Thin pages get the source's name and notes prepended so the classifier
    has some context to work with.
    """
    if max_chars is None:
        max_chars = get_settings().webpage_max_chars

    soup = BeautifulSoup(page_html or "", "lxml")
    title = ""
    if soup.title is not None:
        title = clean_text(soup.title.get_text(" "))
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = re.sub(r"\s+", " ", soup.get_text(" ")).strip()[:max_chars]

    if not title and not body:
        return []
    title = title or source.name

    if len(body) < THIN_BODY_CHARS:
        body = f"Source: {source.name}\nNotes: {source.notes or ''}\n\n{body}"

    return [CrawlInput(
        title=title,
        url=source.url,
        summary=body[:WEBPAGE_SUMMARY_CHARS],
        raw_text=body,
        published_at=None,
    )]
