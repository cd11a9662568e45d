"""
Schemas package: all data models for the regulation tracker.

Models are organized by domain in submodules:
  - base.py: Enums (source kinds, stages, age brackets, outcomes)
  - sources.py: SourceDescriptor
  - items.py: CrawlInput, CrawledItem, CrawlSourceResult, CrawlResult
  - analysis.py: AnalyzedItem + normalisation rules
  - events.py: RegulationEventInput, UpsertEventResult, CrawlSummary
"""

from regwatch.schemas.base import (
    SourceKind, AuthorityType, RegulationStage, AgeBracket,
    CrawlRunStatus, UpsertStatus,
)
from regwatch.schemas.sources import SourceDescriptor
from regwatch.schemas.items import CrawlInput, CrawledItem, CrawlSourceResult, CrawlResult
from regwatch.schemas.analysis import (
    AnalyzedItem, normalize_stage, normalize_age_bracket, normalize_score,
    sanitize_string_list,
)
from regwatch.schemas.events import (
    RegulationEventInput, UpsertEventResult, CrawlRunCounts, SourceError, CrawlSummary,
)

__all__ = [
    # base
    "SourceKind", "AuthorityType", "RegulationStage", "AgeBracket",
    "CrawlRunStatus", "UpsertStatus",
    # sources
    "SourceDescriptor",
    # items
    "CrawlInput", "CrawledItem", "CrawlSourceResult", "CrawlResult",
    # analysis
    "AnalyzedItem", "normalize_stage", "normalize_age_bracket", "normalize_score",
    "sanitize_string_list",
    # events
    "RegulationEventInput", "UpsertEventResult", "CrawlRunCounts", "SourceError", "CrawlSummary",
]
