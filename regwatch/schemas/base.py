"""
Common enums used across the tracker.

They define the vocabulary of the system: source kinds, authority levels,
regulation lifecycle stages, age brackets, and crawl/upsert outcomes.
"""

from enum import Enum


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Sources
# ══════════════════════════════════════════════════════════════════════════════

class SourceKind(str, Enum):
    """How a source is fetched and parsed."""
    WEBPAGE = "webpage"
    FEED = "feed"                    # RSS / Atom
    NEWS_SEARCH = "news_search"      # search endpoint returning a feed
    SOCIAL_SEARCH = "social_search"  # X recent search, rate limited


class AuthorityType(str, Enum):
    """Level of government that issues the regulation."""
    NATIONAL = "national"
    STATE = "state"
    LOCAL = "local"
    SUPRANATIONAL = "supranational"


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Regulation events
# ══════════════════════════════════════════════════════════════════════════════

class RegulationStage(str, Enum):
    """Legislative lifecycle stage, in lifecycle order."""
    PROPOSED = "proposed"
    INTRODUCED = "introduced"
    COMMITTEE_REVIEW = "committee_review"
    PASSED = "passed"
    ENACTED = "enacted"
    EFFECTIVE = "effective"
    AMENDED = "amended"
    WITHDRAWN = "withdrawn"
    REJECTED = "rejected"


class AgeBracket(str, Enum):
    """Teen age bracket a regulation targets."""
    AGE_13_15 = "13-15"
    AGE_16_18 = "16-18"
    BOTH = "both"


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Outcomes
# ══════════════════════════════════════════════════════════════════════════════

class CrawlRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class UpsertStatus(str, Enum):
    """Outcome of reconciling one event against the store."""
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    UNCHANGED = "unchanged"
