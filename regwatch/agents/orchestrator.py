"""
Ingestion pipeline: one crawl pass from catalog to persisted events.

Flow: ledger open -> crawl -> classify (concurrent batches) -> per-item write
(relevance, quality gate, in-pass dedup, upsert) -> ledger finalize.

Writes are strictly sequential: each batch is classified concurrently, then
its results are written one by one before the next batch starts.
"""

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Sequence, Set, Tuple

import httpx

from ..config import Settings, get_settings, get_source_catalog
from ..database import Database
from ..news.crawler import crawl_sources, hash_text
from ..news.jurisdiction import Jurisdiction, split_jurisdiction
from ..news.quality import clean_summary, is_low_quality_event
from ..schemas import (
    AgeBracket, AnalyzedItem, CrawledItem, CrawlRunCounts, CrawlRunStatus, CrawlSummary,
    RegulationEventInput, SourceDescriptor, SourceError, UpsertStatus,
)
from .classifier import Classifier, FallbackClassifier

logger = logging.getLogger(__name__)

IGNORED = "ignored"

DEFAULT_REQUIRED_SOLUTIONS = ["Legal review", "Monitoring"]
DEFAULT_EVENT_PRODUCTS = ["Meta Platforms", "Meta Ads Products"]

# Every enumerated bracket sits at or under 18 and overlaps under-16 users
UNDER16_BRACKETS = {AgeBracket.AGE_13_15.value, AgeBracket.AGE_16_18.value, AgeBracket.BOTH.value}

_DATE_FORMATS = [
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
]


# ── Mapping ──────────────────────────────────────────────────────────────────

def _utc_date(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()


def estimate_published_date(raw: Optional[str]) -> Optional[str]:
    """ISO date (YYYY-MM-DD) from a feed/API timestamp, or None if unparseable.

    Timestamps carrying an offset are converted to UTC first.
    """
    if not raw or not raw.strip():
        return None
    text = raw.strip()

    try:
        return _utc_date(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return _utc_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def map_analysis_to_event(
    item: CrawledItem,
    analysis: AnalyzedItem,
    jurisdiction: Optional[Jurisdiction] = None,
    summary: Optional[str] = None,
) -> RegulationEventInput:
    """Build the persisted event shape from a crawled item and its analysis."""
    jurisdiction = jurisdiction or split_jurisdiction(analysis.jurisdiction or item.source.jurisdiction)
    return RegulationEventInput(
        title=item.title,
        jurisdiction_country=jurisdiction.country,
        jurisdiction_state=jurisdiction.state,
        stage=analysis.stage,
        age_bracket=analysis.age_bracket,
        is_under16_applicable=analysis.age_bracket in UNDER16_BRACKETS,
        impact_score=analysis.impact_score,
        likelihood_score=analysis.likelihood_score,
        confidence_score=analysis.confidence_score,
        chili_score=analysis.chili_score,
        summary=summary if summary is not None else analysis.summary,
        business_impact=analysis.business_impact,
        required_solutions=analysis.required_solutions or list(DEFAULT_REQUIRED_SOLUTIONS),
        affected_products=analysis.affected_products or list(DEFAULT_EVENT_PRODUCTS),
        competitor_responses=analysis.competitor_responses,
        provenance_links=item.provenance_links,
        raw_source_text=item.raw_text,
        effective_date=None,
        published_date=estimate_published_date(item.published_at),
        source=item.source,
    )


# ── Write phase ──────────────────────────────────────────────────────────────

def _pass_key(jurisdiction: Jurisdiction, item: CrawledItem) -> Tuple[str, str, str, str]:
    return (
        jurisdiction.country.lower(),
        (jurisdiction.state or "").lower(),
        item.title.strip().lower(),
        hash_text(item.raw_text),
    )


def persist_analyzed_item(
    db: Database,
    item: CrawledItem,
    analysis: AnalyzedItem,
    seen_keys: Set[Tuple[str, str, str, str]],
) -> str:
    """Apply relevance, quality gate, in-pass dedup and upsert to one item.

    Returns an UpsertStatus value or "ignored". Store errors are logged and
    reported as "ignored".
    """
    if not analysis.is_relevant:
        return IGNORED

    summary = clean_summary(analysis.summary) or ""
    if is_low_quality_event(
        title=item.title,
        summary=summary,
        source_name=item.source.name,
        source_url=item.source.url,
        raw_text=item.raw_text,
    ):
        logger.debug(f"[GATE] rejected: {item.title[:80]}")
        return IGNORED

    jurisdiction = split_jurisdiction(analysis.jurisdiction or item.source.jurisdiction)
    key = _pass_key(jurisdiction, item)
    if key in seen_keys:
        return IGNORED
    seen_keys.add(key)

    try:
        result = db.upsert_regulation_event(map_analysis_to_event(item, analysis, jurisdiction, summary))
    except Exception as e:
        logger.warning(f"[DB] upsert failed for '{item.title[:60]}': {e}")
        return IGNORED
    return result.status


def _record_outcome(counts: CrawlRunCounts, outcome: str):
    if outcome == UpsertStatus.CREATED.value:
        counts.events_created += 1
    elif outcome == UpsertStatus.UPDATED.value:
        counts.events_updated += 1
    elif outcome == UpsertStatus.STATUS_CHANGED.value:
        counts.events_status_changed += 1
    elif outcome == UpsertStatus.UNCHANGED.value:
        counts.events_unchanged += 1
    else:
        counts.events_ignored += 1


def _select_sources(
    source_ids: Optional[Sequence[str]],
    sources: Optional[List[SourceDescriptor]],
) -> List[SourceDescriptor]:
    if sources is None:
        return get_source_catalog(list(source_ids) if source_ids else None)
    if source_ids:
        wanted = set(source_ids)
        return [s for s in sources if s.id in wanted]
    return list(sources)


# ── Entry point ──────────────────────────────────────────────────────────────

async def run_ingestion_pipeline(
    db: Database,
    source_ids: Optional[Sequence[str]] = None,
    *,
    classifier: Optional[Classifier] = None,
    sources: Optional[List[SourceDescriptor]] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> CrawlSummary:
    """Run one ingestion pass and return its summary.

    Args:
        db: Event store (single writer).
        source_ids: Restrict the pass to these catalog ids.
        classifier: Defaults to a fresh FallbackClassifier for this pass.
        sources: Source list to use instead of the catalog.
        client: Shared HTTP client for crawling.
        settings: Defaults to the cached application settings.

    Raises:
        Whatever aborted the pass. The ledger row is finalized as `failed`
        before the exception propagates.
    """
    settings = settings or get_settings()
    selected = _select_sources(source_ids, sources)
    classifier = classifier or FallbackClassifier(settings=settings)
    batch_size = max(1, settings.classify_batch_size)

    run_id = db.create_crawl_run()
    started_at = datetime.now(timezone.utc)
    counts = CrawlRunCounts()
    source_errors: List[SourceError] = []
    status = CrawlRunStatus.FAILED

    logger.info("=" * 50)
    logger.info(f"CRAWL RUN {run_id}: {len(selected)} sources")
    logger.info("=" * 50)

    try:
        crawl = await crawl_sources(selected, client=client, settings=settings)

        counts.sources_attempted = len(crawl.source_results)
        for result in crawl.source_results:
            if result.error:
                counts.sources_failed += 1
                source_errors.append(SourceError(source_id=result.source_id, message=result.error))
            else:
                counts.sources_succeeded += 1

        items = crawl.items
        seen_keys: Set[Tuple[str, str, str, str]] = set()
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            logger.info(f"Classifying [{start + 1}-{start + len(batch)}/{len(items)}]")
            results = await asyncio.gather(
                *(classifier.classify(item) for item in batch),
                return_exceptions=True,
            )

            for item, result in zip(batch, results):
                counts.items_discovered += 1
                if isinstance(result, Exception):
                    logger.warning(f"[CLASSIFY] {item.title[:60]}: {type(result).__name__}: {result}")
                    counts.events_ignored += 1
                    continue
                if isinstance(result, BaseException):
                    raise result
                _record_outcome(counts, persist_analyzed_item(db, item, result, seen_keys))

        status = CrawlRunStatus.PARTIAL if counts.sources_failed else CrawlRunStatus.COMPLETED
    finally:
        finished_at = db.finalize_crawl_run(run_id, status, counts)
        logger.info(
            f"CRAWL RUN {run_id} {status.value}: "
            f"{counts.sources_succeeded}/{counts.sources_attempted} sources ok, "
            f"{counts.items_discovered} items, {counts.events_created} created, "
            f"{counts.events_updated} updated, {counts.events_status_changed} stage changes, "
            f"{counts.events_unchanged} unchanged, {counts.events_ignored} ignored"
        )

    return CrawlSummary(
        run_id=run_id,
        status=status,
        started_at=started_at,
        finished_at=finished_at.replace(tzinfo=timezone.utc),
        source_errors=source_errors,
        **counts.model_dump(),
    )
