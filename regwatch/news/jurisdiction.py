"""
Jurisdiction splitter: free-text label to (country, state).

"California, United States" → ("United States", "California")
"EU, Ireland"               → ("EU", "Ireland")
"Utah"                      → ("Utah", None)

This is a heuristic over a small known-country set, not geocoding. Labels
where neither end names a known country fall back to first segment as
country, which can be wrong.
"""

from typing import AbstractSet, NamedTuple, Optional

from ..config import KNOWN_COUNTRIES

UNKNOWN_COUNTRY = "Unknown"


class Jurisdiction(NamedTuple):
    country: str
    state: Optional[str]


def is_known_country(value: str, known_countries: AbstractSet[str] = KNOWN_COUNTRIES) -> bool:
    return value.strip().lower() in known_countries


def split_jurisdiction(raw: Optional[str], known_countries: AbstractSet[str] = KNOWN_COUNTRIES) -> Jurisdiction:
    text = (raw or "").strip()
    if not text:
        return Jurisdiction(UNKNOWN_COUNTRY, None)

    parts = [part.strip() for part in text.split(",") if part.strip()]
    if len(parts) <= 1:
        return Jurisdiction(parts[0] if parts else UNKNOWN_COUNTRY, None)

    first, last = parts[0], parts[-1]
    if is_known_country(last, known_countries):
        return Jurisdiction(last, ", ".join(parts[:-1]) or None)
    if is_known_country(first, known_countries):
        return Jurisdiction(first, ", ".join(parts[1:]) or None)
    return Jurisdiction(first, ", ".join(parts[1:]) or None)
