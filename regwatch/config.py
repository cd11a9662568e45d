"""
Configuration management for the teen online-safety regulation tracker.

Runtime knobs come from environment variables (or `.env`) via pydantic-settings.
The source catalog and the jurisdiction vocabulary are static module-level
constants, loaded once and never mutated.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings
from pydantic import Field

from .schemas.sources import SourceDescriptor

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    database_url: str = Field(default="sqlite:///./data/regwatch.db", alias="DATABASE_URL")

    # Relevance classifier (Anthropic-messages-compatible endpoint)
    classifier_api_key: str = Field(default="", alias="MINIMAX_API_KEY")
    classifier_base_url: str = Field(default="https://api.minimax.io/anthropic/v1", alias="CLASSIFIER_BASE_URL")
    classifier_model: str = Field(default="MiniMax-M2.5", alias="CLASSIFIER_MODEL")
    classifier_api_version: str = Field(default="2023-06-01", alias="CLASSIFIER_API_VERSION")
    classifier_timeout_seconds: float = Field(default=60.0, alias="CLASSIFIER_TIMEOUT_SECONDS")
    classifier_max_tokens: int = Field(default=2048, alias="CLASSIFIER_MAX_TOKENS")
    # Auth failures tolerated before the rest of the pass goes heuristic-only
    classifier_auth_failure_limit: int = Field(default=1, alias="CLASSIFIER_AUTH_FAILURE_LIMIT")
    classify_batch_size: int = Field(default=10, alias="CLASSIFY_BATCH_SIZE")
    snippet_max_chars: int = Field(default=5000, alias="SNIPPET_MAX_CHARS")

    # Social search (X recent search)
    x_bearer_token: str = Field(default="", alias="X_BEARER_TOKEN")
    social_search_delay_seconds: float = Field(default=1.5, alias="SOCIAL_SEARCH_DELAY_SECONDS")

    # Fetching / parsing
    fetch_timeout_seconds: float = Field(default=30.0, alias="FETCH_TIMEOUT_SECONDS")
    max_items_per_feed: int = Field(default=5, alias="MAX_ITEMS_PER_FEED")
    webpage_max_chars: int = Field(default=8000, alias="WEBPAGE_MAX_CHARS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ══════════════════════════════════════════════════════════════════════════════
# SOURCE CATALOG
# ══════════════════════════════════════════════════════════════════════════════
# kind: webpage | feed | news_search | social_search
# news_search sources carry `search_query`; the URL is the search endpoint.

SOURCES: Dict[str, Dict] = {
    # ─────────────────────────────────────────────────────────────────────────
    # National regulators and legislatures
    # ─────────────────────────────────────────────────────────────────────────
    "ftc_press": {
        "id": "ftc_press",
        "name": "US Federal Trade Commission Press Releases",
        "url": "https://www.ftc.gov/feeds/press-release.xml",
        "kind": "feed",
        "jurisdiction": "United States",
        "authority_type": "national",
        "reliability_tier": 5,
    },
    "federal_register_coppa": {
        "id": "federal_register_coppa",
        "name": "US Federal Register (COPPA)",
        "url": "https://www.federalregister.gov/api/v1/documents.rss?conditions%5Bterm%5D=children%27s+online+privacy",
        "kind": "feed",
        "jurisdiction": "United States",
        "authority_type": "national",
        "reliability_tier": 5,
    },
    "ofcom_online_safety": {
        "id": "ofcom_online_safety",
        "name": "UK Ofcom Online Safety",
        "url": "https://www.ofcom.org.uk/online-safety",
        "kind": "webpage",
        "jurisdiction": "United Kingdom",
        "authority_type": "national",
        "reliability_tier": 5,
        "notes": "Online Safety Act codes of practice, children's risk assessments and age assurance guidance.",
    },
    "ico_childrens_code": {
        "id": "ico_childrens_code",
        "name": "UK ICO Children's Code",
        "url": "https://ico.org.uk/for-organisations/uk-gdpr-guidance-and-resources/childrens-information/childrens-code-guidance-and-resources/",
        "kind": "webpage",
        "jurisdiction": "United Kingdom",
        "authority_type": "national",
        "reliability_tier": 5,
        "notes": "Age appropriate design code for online services likely to be accessed by children.",
    },
    "esafety_au": {
        "id": "esafety_au",
        "name": "Australia eSafety Commissioner",
        "url": "https://www.esafety.gov.au/newsroom/media-releases",
        "kind": "webpage",
        "jurisdiction": "Australia",
        "authority_type": "national",
        "reliability_tier": 5,
        "notes": "Social media minimum age obligations and industry codes for under-16 users.",
    },
    "eu_digital_strategy": {
        "id": "eu_digital_strategy",
        "name": "European Commission Digital Strategy",
        "url": "https://digital-strategy.ec.europa.eu/en/rss.xml",
        "kind": "feed",
        "jurisdiction": "European Union",
        "authority_type": "supranational",
        "reliability_tier": 5,
    },
    "california_legislature": {
        "id": "california_legislature",
        "name": "California State Legislature",
        "url": "https://leginfo.legislature.ca.gov/faces/billSearchClient.xhtml",
        "kind": "webpage",
        "jurisdiction": "California, United States",
        "authority_type": "state",
        "reliability_tier": 4,
        "notes": "Age-appropriate design code and social media addiction bills.",
    },

    # ─────────────────────────────────────────────────────────────────────────
    # News search (Google News RSS)
    # ─────────────────────────────────────────────────────────────────────────
    "news_kosa": {
        "id": "news_kosa",
        "name": "News Search: Kids Online Safety Act",
        "url": "https://news.google.com/rss/search",
        "kind": "news_search",
        "jurisdiction": "United States",
        "authority_type": "national",
        "reliability_tier": 3,
        "search_query": "\"Kids Online Safety Act\" OR KOSA teens",
    },
    "news_age_verification": {
        "id": "news_age_verification",
        "name": "News Search: Social Media Age Verification",
        "url": "https://news.google.com/rss/search",
        "kind": "news_search",
        "jurisdiction": "Unknown",
        "authority_type": "national",
        "reliability_tier": 3,
        "search_query": "social media age verification law teens",
    },

    # ─────────────────────────────────────────────────────────────────────────
    # Social search (X recent search, requires X_BEARER_TOKEN)
    # ─────────────────────────────────────────────────────────────────────────
    "x_teen_safety": {
        "id": "x_teen_safety",
        "name": "X Search: Teen Online Safety Law",
        "url": "https://x.com/search",
        "kind": "social_search",
        "jurisdiction": "Unknown",
        "authority_type": "national",
        "reliability_tier": 2,
        "search_query": "(\"online safety\" OR \"age verification\") (teens OR minors) (bill OR law) -is:retweet lang:en",
    },
}

DEFAULT_ACTIVE_SOURCES: List[str] = list(SOURCES.keys())


# ══════════════════════════════════════════════════════════════════════════════
# JURISDICTION VOCABULARY
# ══════════════════════════════════════════════════════════════════════════════

KNOWN_COUNTRIES = frozenset({
    "united states",
    "usa",
    "united kingdom",
    "uk",
    "australia",
    "canada",
    "india",
    "japan",
    "south korea",
    "singapore",
    "brazil",
    "mexico",
    "european union",
    "eu",
    "european union and european economic area",
})


def get_source_catalog(source_ids: Optional[List[str]] = None) -> List[SourceDescriptor]:
    """Load catalog entries as descriptors, optionally restricted to `source_ids`.

    Unknown ids are skipped with a warning. Order follows `source_ids` when given.
    """
    if source_ids is None:
        source_ids = DEFAULT_ACTIVE_SOURCES

    catalog = []
    unknown = []
    for sid in source_ids:
        cfg = SOURCES.get(sid)
        if cfg is None:
            unknown.append(sid)
            continue
        catalog.append(SourceDescriptor(**cfg))
    if unknown:
        logger.warning(f"Unknown source ids ignored: {unknown}")
    return catalog
