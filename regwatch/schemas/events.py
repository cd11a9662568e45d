"""
Persistence-facing models: the event handed to the upsert engine, its
outcome, and the per-pass crawl summary.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .analysis import normalize_score
from .base import AgeBracket, CrawlRunStatus, RegulationStage, UpsertStatus
from .sources import SourceDescriptor


class RegulationEventInput(BaseModel):
    """Fully mapped event, ready to reconcile against the store."""
    title: str
    jurisdiction_country: str
    jurisdiction_state: Optional[str] = None
    stage: RegulationStage = RegulationStage.PROPOSED
    age_bracket: AgeBracket = AgeBracket.BOTH
    is_under16_applicable: bool = True
    impact_score: int = 1
    likelihood_score: int = 1
    confidence_score: int = 1
    chili_score: int = 1
    summary: str = ""
    business_impact: str = ""
    required_solutions: List[str] = Field(default_factory=list)
    affected_products: List[str] = Field(default_factory=list)
    competitor_responses: List[str] = Field(default_factory=list)
    provenance_links: List[str] = Field(default_factory=list)
    raw_source_text: str = ""
    effective_date: Optional[str] = None
    published_date: Optional[str] = None
    source: SourceDescriptor

    # Re-clamped here too: the store never holds an out-of-range score
    @field_validator("impact_score", "likelihood_score", "confidence_score", "chili_score", mode="before")
    @classmethod
    def clamp_scores(cls, v):
        return normalize_score(v)

    class Config:
        use_enum_values = True


class UpsertEventResult(BaseModel):
    id: str
    status: UpsertStatus
    was_status_change: bool = False
    previous_stage: Optional[RegulationStage] = None

    class Config:
        use_enum_values = True


class CrawlRunCounts(BaseModel):
    """Counters written to the crawl-run ledger on finalize."""
    sources_attempted: int = 0
    sources_succeeded: int = 0
    sources_failed: int = 0
    items_discovered: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_status_changed: int = 0
    events_unchanged: int = 0
    events_ignored: int = 0


class SourceError(BaseModel):
    source_id: str
    message: str


class CrawlSummary(CrawlRunCounts):
    """Returned by one ingestion pass."""
    run_id: int
    status: CrawlRunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    source_errors: List[SourceError] = Field(default_factory=list)

    class Config:
        use_enum_values = True
