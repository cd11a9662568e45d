"""
Quality gate: text cleanup helpers and the post-classification reject filter.

A classifier can call an item relevant and still hand back a summary that is
empty, a copy of the title, scraped site chrome, or a "no details available"
placeholder. `is_low_quality_event` rejects those independently of the
relevance verdict.

All functions are pure. Pattern lists are module-level defaults and can be
replaced per call, so callers can extend them without touching the logic.
"""

import html
import re
from typing import Iterable, Optional, Pattern, Sequence

MIN_SUMMARY_LENGTH = 40
MAX_SUMMARY_CHARS = 1600
LAW_FIRM_MIN_SUMMARY_LENGTH = 120

# Site chrome that leaks into scraped page text
LOW_SIGNAL_PHRASES: Sequence[Pattern] = (
    re.compile(r"skip to main content", re.I),
    re.compile(r"official website of the united states government", re.I),
    re.compile(r"here'?s how you know", re.I),
    re.compile(r"internet explorer version\s*\d+", re.I),
    re.compile(r"select your language", re.I),
    re.compile(r"cookie(s| manager)?", re.I),
    re.compile(r"toggle navigation", re.I),
    re.compile(r"all rights reserved", re.I),
    re.compile(r"privacy policy", re.I),
    re.compile(r"terms of service", re.I),
    re.compile(r"accept (all )?cookies", re.I),
    re.compile(r"subscribe to our newsletter", re.I),
    re.compile(r"follow us on (x|twitter|facebook|instagram|linkedin)", re.I),
    re.compile(r"menu close menu", re.I),
)

# Placeholder summaries produced when there is nothing to say
BOILERPLATE_SUMMARIES: Sequence[Pattern] = (
    re.compile(r"^no (further |additional )?details? (are |were )?(available|provided)", re.I),
    re.compile(r"^not enough (evidence|information|detail)", re.I),
    re.compile(r"^(summary|details?) (not|un)available", re.I),
    re.compile(r"^n/?a\.?$", re.I),
)

REGULATORY_SIGNAL = re.compile(
    r"(regulation|law|bill|legislation|act|guideline|compliance|enforcement|privacy|"
    r"online safety|coppa|kosa|dsa|osa|age verification|parental consent|children'?s code|"
    r"commission|parliament|senate|congress|data protection)",
    re.I,
)

POLICY_SIGNAL = re.compile(
    r"(regulation|law|bill|act|enforcement|guideline|policy|compliance|age verification|privacy)",
    re.I,
)

_LAW_FIRM_BLOCKLIST = re.compile(r"\bkennedys law\b", re.I)
_LAW_FIRM_BLOG = re.compile(r"\b(law llp|insights|blog post)\b", re.I)
_SOCIAL_SOURCE = re.compile(r"\bx search\b", re.I)

_SCRIPT_BLOCKS = re.compile(r"<(script|style|noscript)[\s\S]*?</\1>", re.I)
_TAGS = re.compile(r"<[^>]*>")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_CAMEL_RUN = re.compile(r"(\b[A-Z][a-z]+){12,}")


# ══════════════════════════════════════════════════════════════════════════════
# TEXT CLEANUP
# ══════════════════════════════════════════════════════════════════════════════

def decode_html_entities(text: str) -> str:
    return html.unescape(text or "")


def strip_html(text: str) -> str:
    """Drop script/style/noscript blocks, then every remaining tag."""
    text = _SCRIPT_BLOCKS.sub(" ", text or "")
    return _TAGS.sub(" ", text)


def clean_text(text: Optional[str]) -> str:
    """Entity-decode, strip markup, collapse whitespace and control chars."""
    stripped = strip_html(decode_html_entities(text or ""))
    stripped = _CONTROL_CHARS.sub(" ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def clean_summary(
    text: Optional[str],
    low_signal_phrases: Iterable[Pattern] = LOW_SIGNAL_PHRASES,
) -> Optional[str]:
    """Clean text and remove site-chrome phrases. Returns None when nothing is left."""
    if not text or not text.strip():
        return None

    cleaned = clean_text(text)
    for pattern in low_signal_phrases:
        cleaned = pattern.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    # Runs of concatenated menu labels ("HomeAboutNewsContact...")
    cleaned = _CAMEL_RUN.sub(" ", cleaned).strip()

    if not cleaned:
        return None
    return cleaned[:MAX_SUMMARY_CHARS]


# ══════════════════════════════════════════════════════════════════════════════
# GATE
# ══════════════════════════════════════════════════════════════════════════════

def count_low_signal_hits(text: str, low_signal_phrases: Iterable[Pattern] = LOW_SIGNAL_PHRASES) -> int:
    return sum(1 for pattern in low_signal_phrases if pattern.search(text))


def is_low_quality_event(
    title: str,
    summary: Optional[str],
    source_name: str = "",
    source_url: str = "",
    raw_text: str = "",
    boilerplate_summaries: Iterable[Pattern] = BOILERPLATE_SUMMARIES,
    low_signal_phrases: Iterable[Pattern] = LOW_SIGNAL_PHRASES,
    min_summary_length: int = MIN_SUMMARY_LENGTH,
) -> bool:
    """Return True when the item should not be persisted."""
    summary = (summary or "").strip()
    if not summary:
        return True
    if len(summary) < min_summary_length:
        return True
    if summary.lower() == (title or "").strip().lower():
        return True
    if any(pattern.search(summary) for pattern in boilerplate_summaries):
        return True
    if count_low_signal_hits(summary, low_signal_phrases) >= 2:
        return True

    source_text = f"{source_name} {source_url}"
    if _LAW_FIRM_BLOCKLIST.search(source_text):
        return True
    if _LAW_FIRM_BLOG.search(source_text) and len(summary) < LAW_FIRM_MIN_SUMMARY_LENGTH:
        return True

    combined = f"{title} {summary} {raw_text} {source_name} {source_url}"
    if not REGULATORY_SIGNAL.search(combined):
        return True

    if _SOCIAL_SOURCE.search(source_name) and not POLICY_SIGNAL.search(combined):
        return True

    return False
