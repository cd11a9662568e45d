"""
Crawl orchestrator: fetch + parse across a set of sources for one pass.

Sources are scheduled on one of two lanes, chosen by kind:
  - CONCURRENT: one task per source, gathered together
  - SEQUENTIAL: one at a time with a fixed delay between calls, for sources
    behind an external quota (social search)

A failing source becomes a CrawlSourceResult with an error and zero items;
it never aborts the pass. Items are deduplicated per source after collection.
"""

import asyncio
import hashlib
import logging
import re
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from ..config import Settings, get_settings
from ..schemas import CrawledItem, CrawlInput, CrawlResult, CrawlSourceResult, SourceDescriptor, SourceKind
from ..tools.feed_parser import build_news_search_url, normalize_url, parse_feed_text, parse_web_page
from ..tools.fetcher import FetchError, fetch_text
from ..tools.social_search import search_recent_posts

logger = logging.getLogger(__name__)


class SchedulingLane(str, Enum):
    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


LANE_BY_KIND: Dict[str, SchedulingLane] = {
    SourceKind.WEBPAGE.value: SchedulingLane.CONCURRENT,
    SourceKind.FEED.value: SchedulingLane.CONCURRENT,
    SourceKind.NEWS_SEARCH.value: SchedulingLane.CONCURRENT,
    SourceKind.SOCIAL_SEARCH.value: SchedulingLane.SEQUENTIAL,
}


# ── Per-kind handlers ────────────────────────────────────────────────────────

async def _crawl_webpage(source: SourceDescriptor, client: httpx.AsyncClient, settings: Settings) -> List[CrawlInput]:
    payload = await fetch_text(source.url, client=client, timeout=settings.fetch_timeout_seconds)
    return parse_web_page(payload, source, max_chars=settings.webpage_max_chars)


async def _crawl_feed(source: SourceDescriptor, client: httpx.AsyncClient, settings: Settings) -> List[CrawlInput]:
    payload = await fetch_text(source.url, client=client, timeout=settings.fetch_timeout_seconds)
    return parse_feed_text(payload, source.url, max_items=settings.max_items_per_feed)


async def _crawl_news_search(source: SourceDescriptor, client: httpx.AsyncClient, settings: Settings) -> List[CrawlInput]:
    payload = await fetch_text(build_news_search_url(source), client=client, timeout=settings.fetch_timeout_seconds)
    return parse_feed_text(payload, source.url, max_items=settings.max_items_per_feed)


async def _crawl_social_search(source: SourceDescriptor, client: httpx.AsyncClient, settings: Settings) -> List[CrawlInput]:
    if not settings.x_bearer_token:
        raise FetchError("X_BEARER_TOKEN not set")
    return await search_recent_posts(source, settings.x_bearer_token, client=client)


_HANDLERS: Dict[str, Callable[..., Awaitable[List[CrawlInput]]]] = {
    SourceKind.WEBPAGE.value: _crawl_webpage,
    SourceKind.FEED.value: _crawl_feed,
    SourceKind.NEWS_SEARCH.value: _crawl_news_search,
    SourceKind.SOCIAL_SEARCH.value: _crawl_social_search,
}


async def crawl_source(
    source: SourceDescriptor,
    client: httpx.AsyncClient,
    settings: Optional[Settings] = None,
) -> Tuple[CrawlSourceResult, List[CrawlInput]]:
    """Crawl a single source. Never raises; failures come back in the result."""
    settings = settings or get_settings()
    kind = getattr(source.kind, "value", source.kind)
    handler = _HANDLERS.get(kind)
    if handler is None:
        return CrawlSourceResult(source_id=source.id, error=f"Unsupported source kind: {kind}"), []

    try:
        inputs = await handler(source, client, settings)
    except FetchError as e:
        logger.warning(f"[FAIL] {source.name}: {e}")
        return CrawlSourceResult(source_id=source.id, error=str(e)), []
    except Exception as e:
        logger.warning(f"[FAIL] {source.name}: unexpected {type(e).__name__}: {e}")
        return CrawlSourceResult(source_id=source.id, error=str(e)[:200] or type(e).__name__), []

    logger.info(f"[OK] {source.name}: {len(inputs)} items")
    return CrawlSourceResult(source_id=source.id, item_count=len(inputs)), inputs


def bind_items(source: SourceDescriptor, inputs: List[CrawlInput]) -> List[CrawledItem]:
    """Attach source and provenance; drop items whose URL cannot be resolved."""
    items = []
    for entry in inputs:
        url = normalize_url(entry.url, source.url)
        if not url:
            continue
        items.append(CrawledItem(
            title=entry.title.strip(),
            url=url,
            summary=entry.summary,
            raw_text=entry.raw_text,
            published_at=entry.published_at,
            source=source,
            provenance_links=[link for link in (source.url, url) if link],
        ))
    return items


# ── Per-pass dedup ───────────────────────────────────────────────────────────

def hash_text(text: str) -> str:
    normalized = re.sub(r"\s+", " ", text or "").strip().lower()
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()


def dedup_key(item: CrawledItem) -> str:
    """`<source>::<url>`, or `<source>::text:<sha1>` when the item has no URL."""
    normalized_url = item.url.strip().lower()
    if normalized_url:
        return f"{item.source.id}::{normalized_url}"
    return f"{item.source.id}::text:{hash_text(item.raw_text or f'{item.title} {item.summary}')}"


def dedupe_crawled_items(items: List[CrawledItem]) -> List[CrawledItem]:
    """Keep the first item per dedup key, preserving order."""
    deduped: Dict[str, CrawledItem] = {}
    for item in items:
        deduped.setdefault(dedup_key(item), item)
    return list(deduped.values())


# ── Orchestration ────────────────────────────────────────────────────────────

async def _run_lanes(
    sources: List[SourceDescriptor],
    client: httpx.AsyncClient,
    settings: Settings,
) -> List[Tuple[SourceDescriptor, CrawlSourceResult, List[CrawlInput]]]:
    concurrent = [s for s in sources if LANE_BY_KIND.get(getattr(s.kind, "value", s.kind)) != SchedulingLane.SEQUENTIAL]
    sequential = [s for s in sources if LANE_BY_KIND.get(getattr(s.kind, "value", s.kind)) == SchedulingLane.SEQUENTIAL]

    runs = []
    results = await asyncio.gather(*(crawl_source(s, client, settings) for s in concurrent))
    for source, (result, inputs) in zip(concurrent, results):
        runs.append((source, result, inputs))

    for index, source in enumerate(sequential):
        result, inputs = await crawl_source(source, client, settings)
        runs.append((source, result, inputs))
        if index < len(sequential) - 1:
            await asyncio.sleep(settings.social_search_delay_seconds)

    return runs


async def crawl_sources(
    sources: List[SourceDescriptor],
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> CrawlResult:
    """Crawl every source and return deduplicated items plus per-source outcomes.

    Args:
        sources: Sources to crawl; every one gets a CrawlSourceResult.
        client: Shared HTTP client; one is opened for the pass when omitted.
        settings: Defaults to the cached application settings.
    """
    settings = settings or get_settings()

    if client is None:
        async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds) as own_client:
            runs = await _run_lanes(sources, own_client, settings)
    else:
        runs = await _run_lanes(sources, client, settings)

    all_items: List[CrawledItem] = []
    source_results: List[CrawlSourceResult] = []
    for source, result, inputs in runs:
        source_results.append(result)
        all_items.extend(bind_items(source, inputs))

    items = dedupe_crawled_items(all_items)
    failed = sum(1 for r in source_results if r.error)
    logger.info(
        f"[CRAWL] {len(sources)} sources ({failed} failed), "
        f"{len(all_items)} items, {len(items)} after dedup"
    )
    return CrawlResult(items=items, source_results=source_results)
