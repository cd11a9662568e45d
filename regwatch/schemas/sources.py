"""
Source descriptor model.

A source is one place the crawler knows how to read: a regulator web page,
an RSS/Atom feed, a news-search feed, or a social search query.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .base import AuthorityType, SourceKind


class SourceDescriptor(BaseModel):
    """Immutable catalog entry for one crawlable source."""
    id: str
    name: str
    url: str
    kind: SourceKind
    jurisdiction: str = "Unknown"
    authority_type: AuthorityType = AuthorityType.NATIONAL
    reliability_tier: int = Field(default=3, ge=1, le=5)

    # news_search / social_search only
    search_query: Optional[str] = None
    # Context prepended to thin web pages
    notes: Optional[str] = None

    class Config:
        frozen = True
        use_enum_values = True
