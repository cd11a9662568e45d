"""
SQLite database: the system of record for regulation events.

Tables:
  - sources: Registry of crawled sources, upserted by URL
  - regulation_events: One row per regulation fact, keyed by a deterministic id
  - regulation_event_status_changes: Append-only stage transition history
  - crawl_runs: One ledger row per ingestion pass

The upsert engine is the only writer of regulation_events and
regulation_event_status_changes. It must be called from a single writer;
the created/updated/unchanged decision is not safe under concurrent writers.
"""

import hashlib
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    create_engine, func, Column, String, Integer, Text, DateTime, Boolean, ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from .config import get_settings
from .schemas import (
    CrawlRunCounts, CrawlRunStatus, RegulationEventInput, RegulationStage,
    SourceDescriptor, UpsertEventResult, UpsertStatus,
)
from .tools.feed_parser import source_registry_url

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CrawlRunFinalizedError(RuntimeError):
    """A crawl run was finalized twice."""


# ── Models ───────────────────────────────────────────────────────────────────

class SourceModel(Base):
    """Registry row for a crawled source."""
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    catalog_id = Column(String(100))
    name = Column(String(300), nullable=False)
    url = Column(String(1000), nullable=False, unique=True)
    kind = Column(String(30))
    authority_type = Column(String(30), nullable=False)
    jurisdiction = Column(String(200), nullable=False)
    reliability_tier = Column(Integer, nullable=False)
    last_crawled_at = Column(DateTime)
    created_at = Column(DateTime, default=_utcnow)


class RegulationEventModel(Base):
    """One regulation fact. Primary key is `Database.event_identity(...)`."""
    __tablename__ = "regulation_events"

    id = Column(String(40), primary_key=True)
    title = Column(String(1000), nullable=False)
    jurisdiction_country = Column(String(200), nullable=False, index=True)
    jurisdiction_state = Column(String(200), index=True)
    stage = Column(String(30), nullable=False, index=True)
    age_bracket = Column(String(10), nullable=False)
    is_under16_applicable = Column(Boolean, nullable=False, default=True)

    impact_score = Column(Integer, nullable=False)
    likelihood_score = Column(Integer, nullable=False)
    confidence_score = Column(Integer, nullable=False)
    chili_score = Column(Integer, nullable=False)

    summary = Column(Text)
    business_impact = Column(Text, nullable=False)
    required_solutions = Column(Text, nullable=False)  # JSON array
    affected_products = Column(Text, nullable=False)  # JSON array
    competitor_responses = Column(Text, nullable=False)  # JSON array
    provenance_links = Column(Text, nullable=False)  # JSON array
    raw_source_text = Column(Text)

    effective_date = Column(String(10))
    published_date = Column(String(10))

    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False)
    source_url = Column(String(1000), nullable=False)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow)
    last_crawled_at = Column(DateTime)


class StatusChangeModel(Base):
    """Stage transition. Append-only."""
    __tablename__ = "regulation_event_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(40), ForeignKey("regulation_events.id"), nullable=False, index=True)
    previous_stage = Column(String(30), nullable=False)
    new_stage = Column(String(30), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=_utcnow)


class CrawlRunModel(Base):
    """Ledger row for one ingestion pass."""
    __tablename__ = "crawl_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    started_at = Column(DateTime, nullable=False, default=_utcnow)
    finished_at = Column(DateTime, index=True)
    status = Column(String(20), nullable=False, default=CrawlRunStatus.RUNNING.value)
    sources_attempted = Column(Integer, nullable=False, default=0)
    sources_succeeded = Column(Integer, nullable=False, default=0)
    sources_failed = Column(Integer, nullable=False, default=0)
    items_discovered = Column(Integer, nullable=False, default=0)
    events_created = Column(Integer, nullable=False, default=0)
    events_updated = Column(Integer, nullable=False, default=0)
    events_status_changed = Column(Integer, nullable=False, default=0)
    events_unchanged = Column(Integer, nullable=False, default=0)
    events_ignored = Column(Integer, nullable=False, default=0)


# Columns compared to decide updated vs unchanged
_CONTENT_FIELDS = (
    "stage", "age_bracket", "is_under16_applicable",
    "impact_score", "likelihood_score", "confidence_score", "chili_score",
    "summary", "business_impact",
    "required_solutions", "affected_products", "competitor_responses",
    "raw_source_text", "provenance_links",
)


def _event_row_values(event: RegulationEventInput) -> Dict[str, Any]:
    """Column values for an event, list fields serialized the way they are stored."""
    return {
        "stage": event.stage,
        "age_bracket": event.age_bracket,
        "is_under16_applicable": bool(event.is_under16_applicable),
        "impact_score": event.impact_score,
        "likelihood_score": event.likelihood_score,
        "confidence_score": event.confidence_score,
        "chili_score": event.chili_score,
        "summary": event.summary or f"Regulation item: {event.title}",
        "business_impact": event.business_impact or "Unknown",
        "required_solutions": json.dumps(event.required_solutions),
        "affected_products": json.dumps(event.affected_products),
        "competitor_responses": json.dumps(event.competitor_responses),
        "raw_source_text": event.raw_source_text or "",
        "provenance_links": json.dumps(event.provenance_links),
        "effective_date": event.effective_date,
        "published_date": event.published_date,
    }


def _stage_or_default(value: Optional[str]) -> str:
    allowed = {s.value for s in RegulationStage}
    return value if value in allowed else RegulationStage.PROPOSED.value


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Database manager: single writer, lazy-initialized via get_database()."""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        url = database_url or settings.database_url
        if url.startswith("sqlite:///") and not url.startswith("sqlite:///:memory:"):
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Identity ──────────────────────────────────────────────────────

    @staticmethod
    def event_identity(country: str, state: Optional[str], title: str) -> str:
        """Deterministic event id: sha1 of `lower(country)|lower(state)|lower(title)`.

        Heuristic identity, not a unique key: two distinct regulations with
        the same title in the same jurisdiction collapse onto one row.
        """
        key = "|".join(part.strip().lower() for part in (country or "", state or "", title or ""))
        return hashlib.sha1(key.encode("utf-8")).hexdigest()

    # ── Sources ───────────────────────────────────────────────────────

    def _upsert_source(self, session: Session, source: SourceDescriptor, now: datetime) -> int:
        url = source_registry_url(source)
        row = session.query(SourceModel).filter_by(url=url).first()
        if row is None:
            row = SourceModel(url=url, created_at=now)
            session.add(row)
        row.catalog_id = source.id
        row.name = source.name
        row.kind = source.kind
        row.authority_type = source.authority_type
        row.jurisdiction = source.jurisdiction
        row.reliability_tier = source.reliability_tier
        row.last_crawled_at = now
        session.flush()
        return row.id

    def upsert_source(self, source: SourceDescriptor) -> int:
        """Insert or refresh a source registry row by its registry URL. Returns its row id."""
        with self.get_session() as session:
            return self._upsert_source(session, source, _utcnow())

    def get_source_by_url(self, url: str) -> Optional[Dict]:
        with self.get_session() as session:
            row = session.query(SourceModel).filter_by(url=url).first()
            if row is None:
                return None
            return {
                "id": row.id,
                "catalog_id": row.catalog_id,
                "name": row.name,
                "url": row.url,
                "kind": row.kind,
                "authority_type": row.authority_type,
                "jurisdiction": row.jurisdiction,
                "reliability_tier": row.reliability_tier,
                "last_crawled_at": row.last_crawled_at.isoformat() if row.last_crawled_at else None,
            }

    # ── Regulation events ─────────────────────────────────────────────

    def upsert_regulation_event(self, event: RegulationEventInput) -> UpsertEventResult:
        """Reconcile one event against the store.

        absent                          → insert, `created`
        same content                    → bump timestamps, `unchanged`
        content differs, stage differs  → update + history row, `status_changed`
        content differs, same stage     → update, `updated`
        """
        now = _utcnow()
        country = (event.jurisdiction_country or "").strip() or "Unknown"
        state = (event.jurisdiction_state or "").strip() or None
        event_id = self.event_identity(country, state, event.title)
        values = _event_row_values(event)

        with self.get_session() as session:
            source_row_id = self._upsert_source(session, event.source, now)
            existing = session.get(RegulationEventModel, event_id)

            if existing is None:
                session.add(RegulationEventModel(
                    id=event_id,
                    title=event.title,
                    jurisdiction_country=country,
                    jurisdiction_state=state,
                    source_id=source_row_id,
                    source_url=source_registry_url(event.source),
                    created_at=now,
                    updated_at=now,
                    last_crawled_at=now,
                    **values,
                ))
                logger.debug(f"[UPSERT] created {event_id[:10]} {event.title[:60]}")
                return UpsertEventResult(id=event_id, status=UpsertStatus.CREATED)

            previous_stage = _stage_or_default(existing.stage)
            was_status_change = previous_stage != values["stage"]
            has_changes = any(getattr(existing, field) != values[field] for field in _CONTENT_FIELDS)

            if not has_changes:
                existing.last_crawled_at = now
                existing.updated_at = now
                return UpsertEventResult(
                    id=event_id,
                    status=UpsertStatus.UNCHANGED,
                    was_status_change=False,
                    previous_stage=previous_stage,
                )

            for field, value in values.items():
                setattr(existing, field, value)
            existing.source_id = source_row_id
            existing.source_url = source_registry_url(event.source)
            existing.updated_at = now
            existing.last_crawled_at = now

            if was_status_change:
                session.add(StatusChangeModel(
                    event_id=event_id,
                    previous_stage=previous_stage,
                    new_stage=values["stage"],
                    changed_at=now,
                ))
                logger.info(f"[UPSERT] stage {previous_stage} → {values['stage']}: {event.title[:60]}")

            return UpsertEventResult(
                id=event_id,
                status=UpsertStatus.STATUS_CHANGED if was_status_change else UpsertStatus.UPDATED,
                was_status_change=was_status_change,
                previous_stage=previous_stage,
            )

    def get_event(self, event_id: str) -> Optional[Dict]:
        with self.get_session() as session:
            r = session.get(RegulationEventModel, event_id)
            if r is None:
                return None
            return {
                "id": r.id,
                "title": r.title,
                "jurisdiction_country": r.jurisdiction_country,
                "jurisdiction_state": r.jurisdiction_state,
                "stage": r.stage,
                "age_bracket": r.age_bracket,
                "is_under16_applicable": r.is_under16_applicable,
                "impact_score": r.impact_score,
                "likelihood_score": r.likelihood_score,
                "confidence_score": r.confidence_score,
                "chili_score": r.chili_score,
                "summary": r.summary,
                "business_impact": r.business_impact,
                "required_solutions": json.loads(r.required_solutions or "[]"),
                "affected_products": json.loads(r.affected_products or "[]"),
                "competitor_responses": json.loads(r.competitor_responses or "[]"),
                "provenance_links": json.loads(r.provenance_links or "[]"),
                "raw_source_text": r.raw_source_text,
                "effective_date": r.effective_date,
                "published_date": r.published_date,
                "source_id": r.source_id,
                "source_url": r.source_url,
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "updated_at": r.updated_at.isoformat() if r.updated_at else None,
                "last_crawled_at": r.last_crawled_at.isoformat() if r.last_crawled_at else None,
            }

    def count_events(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(RegulationEventModel.id)).scalar() or 0

    def list_event_history(self, event_id: str) -> List[Dict]:
        """Stage transitions for an event, oldest first."""
        with self.get_session() as session:
            rows = (
                session.query(StatusChangeModel)
                .filter_by(event_id=event_id)
                .order_by(StatusChangeModel.changed_at.asc(), StatusChangeModel.id.asc())
                .all()
            )
            return [
                {
                    "previous_stage": _stage_or_default(r.previous_stage),
                    "new_stage": _stage_or_default(r.new_stage),
                    "changed_at": r.changed_at.isoformat(),
                }
                for r in rows
            ]

    def get_event_status_change_count(self, event_id: str) -> int:
        with self.get_session() as session:
            return (
                session.query(func.count(StatusChangeModel.id))
                .filter(StatusChangeModel.event_id == event_id)
                .scalar()
            ) or 0

    # ── Crawl runs ────────────────────────────────────────────────────

    def create_crawl_run(self) -> int:
        """Open a ledger row in `running` state. Returns the run id."""
        with self.get_session() as session:
            run = CrawlRunModel(started_at=_utcnow(), status=CrawlRunStatus.RUNNING.value)
            session.add(run)
            session.flush()
            return run.id

    def finalize_crawl_run(self, run_id: int, status: CrawlRunStatus, counts: CrawlRunCounts) -> datetime:
        """Close a ledger row exactly once. Returns the finish time.

        Raises:
            CrawlRunFinalizedError: the run was already finalized.
            ValueError: no such run.
        """
        finished_at = _utcnow()
        with self.get_session() as session:
            run = session.get(CrawlRunModel, run_id)
            if run is None:
                raise ValueError(f"Unknown crawl run: {run_id}")
            if run.finished_at is not None or run.status != CrawlRunStatus.RUNNING.value:
                raise CrawlRunFinalizedError(f"Crawl run {run_id} already finalized as {run.status}")

            run.finished_at = finished_at
            run.status = getattr(status, "value", status)
            for field, value in counts.model_dump().items():
                setattr(run, field, value)
        return finished_at

    def get_crawl_run(self, run_id: int) -> Optional[Dict]:
        with self.get_session() as session:
            r = session.get(CrawlRunModel, run_id)
            if r is None:
                return None
            return {
                "run_id": r.id,
                "status": r.status,
                "started_at": r.started_at.isoformat() if r.started_at else None,
                "finished_at": r.finished_at.isoformat() if r.finished_at else None,
                "sources_attempted": r.sources_attempted,
                "sources_succeeded": r.sources_succeeded,
                "sources_failed": r.sources_failed,
                "items_discovered": r.items_discovered,
                "events_created": r.events_created,
                "events_updated": r.events_updated,
                "events_status_changed": r.events_status_changed,
                "events_unchanged": r.events_unchanged,
                "events_ignored": r.events_ignored,
            }

    def get_last_crawl_time(self) -> Optional[datetime]:
        """Finish time of the most recent finalized run, if any."""
        with self.get_session() as session:
            return session.query(func.max(CrawlRunModel.finished_at)).scalar()


_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
