"""
Classifier output model and the pure normalisation rules behind it.

Model output is untrusted: stage labels drift ("Bill introduced", "In force"),
scores arrive as strings or floats, lists come back with junk entries. Every
field is coerced into its closed domain here, in `mode='before'` validators,
so nothing downstream ever sees an out-of-range value.
"""

import math
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from .base import AgeBracket, RegulationStage

MAX_LIST_ITEMS = 20

DEFAULT_AFFECTED_PRODUCTS = ["Meta Family of Products"]

# Ordered: first match wins
_STAGE_FALLBACKS = [
    (re.compile(r"proposed", re.I), RegulationStage.PROPOSED),
    (re.compile(r"introduced|draft|bill", re.I), RegulationStage.INTRODUCED),
    (re.compile(r"committee|hear|comment", re.I), RegulationStage.COMMITTEE_REVIEW),
    (re.compile(r"passed|adopted|approved", re.I), RegulationStage.PASSED),
    (re.compile(r"enacted|in force|effective", re.I), RegulationStage.ENACTED),
    (re.compile(r"amend", re.I), RegulationStage.AMENDED),
    (re.compile(r"withdrawn|withdraw", re.I), RegulationStage.WITHDRAWN),
    (re.compile(r"rejected|failed|veto", re.I), RegulationStage.REJECTED),
]

_ALLOWED_STAGES = {s.value for s in RegulationStage}


# ══════════════════════════════════════════════════════════════════════════════
# NORMALISATION
# ══════════════════════════════════════════════════════════════════════════════

def normalize_stage(raw: Optional[str]) -> RegulationStage:
    """Map a free-text stage label onto the 9-value lifecycle enum.

    Exact match after lowercasing and joining words with underscores, then
    the ordered keyword fallbacks, then `proposed`.
    """
    text = raw if isinstance(raw, str) else ""
    candidate = re.sub(r"\s+", "_", text.lower())
    if candidate in _ALLOWED_STAGES:
        return RegulationStage(candidate)

    for pattern, stage in _STAGE_FALLBACKS:
        if pattern.search(text):
            return stage

    return RegulationStage.PROPOSED


def normalize_age_bracket(raw: Optional[str]) -> AgeBracket:
    if not raw or not isinstance(raw, str):
        return AgeBracket.BOTH

    lowered = raw.lower()
    if "13-15" in lowered or ("13" in lowered and "15" in lowered):
        return AgeBracket.AGE_13_15
    if "16-18" in lowered or ("16" in lowered and "18" in lowered):
        return AgeBracket.AGE_16_18
    return AgeBracket.BOTH


def normalize_score(value: Any) -> int:
    """Coerce anything into an integer score in [1, 5]. Non-numeric → 1."""
    if isinstance(value, bool):
        value = int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1

    # Half-up rounding (2.5 → 3), not banker's rounding
    rounded = math.floor(number + 0.5)
    return max(1, min(5, rounded))


def sanitize_string_list(value: Any) -> List[str]:
    """Keep only non-empty trimmed strings, at most 20."""
    if not isinstance(value, list):
        return []
    cleaned = [entry.strip() for entry in value if isinstance(entry, str)]
    return [entry for entry in cleaned if entry][:MAX_LIST_ITEMS]


# ══════════════════════════════════════════════════════════════════════════════
# MODEL
# ══════════════════════════════════════════════════════════════════════════════

class AnalyzedItem(BaseModel):
    """Relevance verdict and structured extraction for one crawled item.

    Accepts both the snake_case field names and the camelCase keys the
    classifier prompt asks the model to emit.
    """
    is_relevant: bool = Field(default=False, alias="isRelevant")
    # Empty means "not stated"; callers fall back to the source jurisdiction
    jurisdiction: str = ""
    stage: RegulationStage = RegulationStage.PROPOSED
    age_bracket: AgeBracket = Field(default=AgeBracket.BOTH, alias="ageBracket")
    affected_products: List[str] = Field(
        default_factory=lambda: list(DEFAULT_AFFECTED_PRODUCTS), alias="affectedMetaProducts",
    )
    summary: str = ""
    business_impact: str = Field(default="", alias="businessImpact")
    required_solutions: List[str] = Field(default_factory=list, alias="requiredSolutions")
    competitor_responses: List[str] = Field(default_factory=list, alias="competitorResponses")
    impact_score: int = Field(default=1, alias="impactScore")
    likelihood_score: int = Field(default=1, alias="likelihoodScore")
    confidence_score: int = Field(default=1, alias="confidenceScore")
    chili_score: int = Field(default=1, alias="chiliScore")

    @field_validator("is_relevant", mode="before")
    @classmethod
    def coerce_bool(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @field_validator("stage", mode="before")
    @classmethod
    def coerce_stage(cls, v):
        if isinstance(v, RegulationStage):
            return v
        return normalize_stage(v)

    @field_validator("age_bracket", mode="before")
    @classmethod
    def coerce_age_bracket(cls, v):
        if isinstance(v, AgeBracket):
            return v
        return normalize_age_bracket(v)

    @field_validator("impact_score", "likelihood_score", "confidence_score", "chili_score", mode="before")
    @classmethod
    def coerce_scores(cls, v):
        return normalize_score(v)

    @field_validator("affected_products", "required_solutions", "competitor_responses", mode="before")
    @classmethod
    def coerce_lists(cls, v):
        return sanitize_string_list(v)

    @field_validator("jurisdiction", "summary", "business_impact", mode="before")
    @classmethod
    def coerce_str_fields(cls, v):
        if not isinstance(v, str):
            return ""
        return v.strip()

    class Config:
        populate_by_name = True
        use_enum_values = True
