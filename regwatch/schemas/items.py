"""
Crawl-time item models.

Hierarchy: CrawlInput (parser output) → CrawledItem (bound to its source,
with provenance) → CrawlResult (all items of a pass plus per-source outcomes).
These live only for the duration of one pass and are never persisted as-is.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .sources import SourceDescriptor


class CrawlInput(BaseModel):
    """One raw item as extracted by a parser."""
    title: str
    url: str
    summary: str = ""
    raw_text: str = ""
    # Raw date string as it appeared in the source
    published_at: Optional[str] = None


class CrawledItem(CrawlInput):
    """A parsed item bound to the source that produced it."""
    source: SourceDescriptor
    provenance_links: List[str] = Field(default_factory=list)


class CrawlSourceResult(BaseModel):
    source_id: str
    item_count: int = 0
    error: Optional[str] = None


class CrawlResult(BaseModel):
    items: List[CrawledItem] = Field(default_factory=list)
    source_results: List[CrawlSourceResult] = Field(default_factory=list)
