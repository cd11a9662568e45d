"""
Relevance classifier: is this item about teen/child online-safety regulation?

Three implementations of one capability (`classify(item) -> AnalyzedItem`):

  RemoteClassifier     Anthropic-messages-compatible LLM endpoint, strict JSON
  HeuristicClassifier  local keyword match, minor-safety terms + regulatory terms
  FallbackClassifier   what the pipeline calls; routes by an explicit mode

FallbackClassifier never raises. No credential → every item gets the safe
"not relevant" default. Any remote failure → safe default for that item.
Repeated auth failures → mode flips to HEURISTIC for the rest of the pass so
the remaining items do not each burn a doomed call.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import httpx

from ..config import Settings, get_settings
from ..news.quality import clean_summary
from ..schemas import AgeBracket, AnalyzedItem, CrawledItem, RegulationStage, normalize_stage
from ..schemas.analysis import DEFAULT_AFFECTED_PRODUCTS
from ..tools.json_repair import extract_text_from_model_response, parse_response_json

logger = logging.getLogger(__name__)


class ClassifierError(Exception):
    """The remote classifier call failed or returned nothing usable."""


class ClassifierAuthError(ClassifierError):
    """The remote classifier rejected the credential (401/403)."""


class ClassifierMode(str, Enum):
    REMOTE = "remote"
    HEURISTIC = "heuristic"
    DISABLED = "disabled"


class Classifier(Protocol):
    async def classify(self, item: CrawledItem) -> AnalyzedItem:
        ...


# ══════════════════════════════════════════════════════════════════════════════
# PROMPT CONTRACT
# ══════════════════════════════════════════════════════════════════════════════

ANALYSIS_PROMPT = """You are an AI legal analyst for global tech regulation.

You are given one crawled source item that may describe online safety regulation.
Classify as relevant if it relates to ANY regulation, law, bill, enforcement, or guidance affecting minors/children/teens online. Be INCLUSIVE: it is far better to include a borderline-relevant item than to miss a real regulation.

Mark as relevant if ANY of these apply:
- Laws/bills/regulations about children or teens online (COPPA, DSA, Online Safety Acts, etc.)
- Data protection with children's provisions (GDPR Art.8, LGPD, DPDP, etc.)
- Age verification, parental consent, or children's data protection
- Platform safety duties for users under 18
- AI regulation affecting minors
- Social media restrictions for minors
- Advertising/profiling restrictions for children
- Even if the text is partial or noisy, if the source and title suggest child/teen regulation, mark relevant

Return compact strict JSON with these exact keys:
{
  "isRelevant": boolean,
  "jurisdiction": string,
  "stage": "proposed|introduced|committee_review|passed|enacted|effective|amended|withdrawn|rejected",
  "ageBracket": "13-15|16-18|both",
  "affectedMetaProducts": [string],
  "summary": string,
  "businessImpact": string,
  "requiredSolutions": [string],
  "competitorResponses": [string],
  "impactScore": number,
  "likelihoodScore": number,
  "confidenceScore": number,
  "chiliScore": number
}

Do not add extra text around JSON.

Rules:
- If not relevant to teen online regulation, set isRelevant false and keep other fields as sensible defaults.
- Jurisdiction must mention country or jurisdiction.
- Stage must be one of the allowed enum.
- Scores must be integers 1-5.
- ageBracket should be 13-15, 16-18, or both.
- businessImpact should be short and action-oriented.
- competitorResponses should mention named competitors when possible and specific response.

Input item:
TITLE: {{title}}
SOURCE: {{source}}
SUMMARY_TEXT:
{{snippet}}
"""


def build_prompt(item: CrawledItem, snippet_max_chars: int = 5000) -> str:
    snippet = "\n\n".join(part for part in (item.summary, item.raw_text) if part)[:snippet_max_chars]
    return (
        ANALYSIS_PROMPT
        .replace("{{title}}", item.title)
        .replace("{{source}}", item.source.name)
        .replace("{{snippet}}", snippet)
    )


def safe_default_analysis(title: str) -> AnalyzedItem:
    """The record used whenever the classifier cannot give a real answer."""
    return AnalyzedItem(
        is_relevant=False,
        jurisdiction="Unknown",
        stage=RegulationStage.PROPOSED,
        age_bracket=AgeBracket.BOTH,
        affected_products=list(DEFAULT_AFFECTED_PRODUCTS),
        summary=f"Not enough evidence to confirm teen-specific relevance for: {title}",
        business_impact="Unknown",
        required_solutions=["Monitoring required"],
        competitor_responses=[],
    )


def analysis_from_payload(parsed: Dict[str, Any], item: CrawledItem) -> AnalyzedItem:
    """Validate a parsed model reply and fill the gaps from the item's source."""
    analysis = AnalyzedItem.model_validate(parsed)
    updates = {}
    if not analysis.jurisdiction:
        updates["jurisdiction"] = item.source.jurisdiction
    if not analysis.affected_products:
        updates["affected_products"] = list(DEFAULT_AFFECTED_PRODUCTS)
    if not analysis.summary:
        updates["summary"] = f"Teen-related relevance note for {item.title}"
    if not analysis.business_impact:
        updates["business_impact"] = "Medium"
    return analysis.model_copy(update=updates) if updates else analysis


# ══════════════════════════════════════════════════════════════════════════════
# REMOTE
# ══════════════════════════════════════════════════════════════════════════════

class RemoteClassifier:
    """LLM classifier over an Anthropic-messages-compatible HTTP endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.api_key = api_key if api_key is not None else self.settings.classifier_api_key
        self.client = client

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        url = f"{self.settings.classifier_base_url.rstrip('/')}/messages"
        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "anthropic-version": self.settings.classifier_api_version,
        }
        timeout = self.settings.classifier_timeout_seconds

        try:
            if self.client is None:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    return await client.post(url, json=payload, headers=headers)
            return await self.client.post(url, json=payload, headers=headers, timeout=timeout)
        except httpx.TimeoutException:
            raise ClassifierError(f"Classifier API request timed out after {timeout:g}s")
        except httpx.HTTPError as e:
            raise ClassifierError(f"Classifier API connection failed: {e}")

    async def classify(self, item: CrawledItem) -> AnalyzedItem:
        if not self.api_key:
            raise ClassifierAuthError("Classifier API key not configured")

        payload = {
            "model": self.settings.classifier_model,
            "messages": [{"role": "user", "content": build_prompt(item, self.settings.snippet_max_chars)}],
            "max_tokens": self.settings.classifier_max_tokens,
        }
        response = await self._post(payload)

        if response.status_code in (401, 403):
            raise ClassifierAuthError(f"Classifier API {response.status_code}: {response.text[:200]}")
        if not response.is_success:
            raise ClassifierError(f"Classifier API {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            raise ClassifierError("Classifier API returned a non-JSON body")

        text = extract_text_from_model_response(body)
        if not text.strip():
            raise ClassifierError("Classifier API returned no analyzable text content")

        parsed = parse_response_json(text)
        if parsed is None:
            raise ClassifierError("Classifier API response could not be parsed as JSON")

        return analysis_from_payload(parsed, item)


# ══════════════════════════════════════════════════════════════════════════════
# HEURISTIC
# ══════════════════════════════════════════════════════════════════════════════

MINOR_TERMS = re.compile(
    r"\b(child|children|children's|kid|kids|minor|minors|teen|teens|teenager|teenagers|"
    r"youth|young people|under[- ]1[368]s?|age verification|age assurance|age-appropriate|"
    r"parental consent|coppa|kosa)\b",
    re.I,
)

REGULATORY_TERMS = re.compile(
    r"\b(law|laws|bill|bills|act|regulation|regulations|regulator|legislation|statute|rule|rules|"
    r"code of practice|guidance|enforcement|fine|fined|consultation|commission|parliament|"
    r"senate|congress|assembly|ban|banned|compliance)\b",
    re.I,
)


class HeuristicClassifier:
    """Keyword classifier: relevant iff both a minor-safety and a regulatory term appear."""

    async def classify(self, item: CrawledItem) -> AnalyzedItem:
        text = f"{item.title} {item.summary} {item.raw_text}"
        relevant = bool(MINOR_TERMS.search(text) and REGULATORY_TERMS.search(text))
        if not relevant:
            return safe_default_analysis(item.title)

        return AnalyzedItem(
            is_relevant=True,
            jurisdiction=item.source.jurisdiction,
            stage=normalize_stage(f"{item.title} {item.summary}"),
            age_bracket=AgeBracket.BOTH,
            affected_products=list(DEFAULT_AFFECTED_PRODUCTS),
            summary=clean_summary(item.summary) or item.title,
            business_impact="Unverified keyword match; needs analyst review",
            impact_score=2,
            likelihood_score=2,
            confidence_score=1,
            chili_score=2,
        )


# ══════════════════════════════════════════════════════════════════════════════
# FALLBACK
# ══════════════════════════════════════════════════════════════════════════════

class FallbackClassifier:
    """Routes each item by `mode`; one instance per pass."""

    def __init__(
        self,
        remote: Optional[Classifier] = None,
        heuristic: Optional[Classifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        if remote is None and self.settings.classifier_api_key:
            remote = RemoteClassifier(settings=self.settings)
        self.remote = remote
        self.heuristic = heuristic or HeuristicClassifier()
        self.mode = ClassifierMode.REMOTE if remote is not None else ClassifierMode.DISABLED
        self.auth_failures = 0

        if self.mode == ClassifierMode.DISABLED:
            logger.warning("[CLASSIFIER] No API key configured; every item gets the not-relevant default")

    async def classify(self, item: CrawledItem) -> AnalyzedItem:
        if self.mode == ClassifierMode.DISABLED:
            return safe_default_analysis(item.title)
        if self.mode == ClassifierMode.HEURISTIC:
            return await self.heuristic.classify(item)

        try:
            return await self.remote.classify(item)
        except ClassifierAuthError as e:
            self.auth_failures += 1
            logger.warning(f"[CLASSIFIER] Auth failure ({self.auth_failures}): {e}")
            if self.auth_failures >= self.settings.classifier_auth_failure_limit:
                self.mode = ClassifierMode.HEURISTIC
                logger.warning("[CLASSIFIER] Switching to keyword heuristic for the rest of this pass")
            return safe_default_analysis(item.title)
        except ClassifierError as e:
            logger.warning(f"[CLASSIFIER] {item.title[:60]}: {e}")
            return safe_default_analysis(item.title)
