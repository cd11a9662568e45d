"""
JSON extraction utilities for classifier output.

Handles common LLM output issues:
- Markdown code block wrapping
- Prose before the JSON object
- Literal control characters inside strings
- Assorted response envelopes (Anthropic messages, OpenAI-ish, plain text)
"""

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_TRAILING_OBJECT = re.compile(r"\{[\s\S]*\}$")


def _loads(text: str) -> Optional[Dict[str, Any]]:
    for strict in (True, False):
        try:
            data = json.loads(text, strict=strict)
        except json.JSONDecodeError:
            continue
        return data if isinstance(data, dict) else None
    return None


def parse_response_json(content: str) -> Optional[Dict[str, Any]]:
    """Parse the JSON object out of a model reply, or None.

    Tries the object the reply ends with first, then the widest slice
    between the first `{` and the last `}`.
    """
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
        cleaned = cleaned.strip()

    match = _TRAILING_OBJECT.search(cleaned)
    if match:
        parsed = _loads(match.group(0))
        if parsed is not None:
            return parsed

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first == -1 or last <= first:
        return None

    parsed = _loads(cleaned[first:last + 1])
    if parsed is None:
        logger.debug(f"Failed to parse JSON from reply: {cleaned[:300]}")
    return parsed


def _text_of_blocks(blocks: Any) -> str:
    if not isinstance(blocks, list):
        return ""
    return " ".join(
        block["text"] for block in blocks
        if isinstance(block, dict) and isinstance(block.get("text"), str)
    )


def extract_text_from_model_response(body: Any) -> str:
    """Pull the assistant text out of whatever envelope the endpoint returned."""
    if not isinstance(body, dict):
        return ""

    if isinstance(body.get("output_text"), str):
        return body["output_text"]

    content = body.get("content")
    joined = _text_of_blocks(content)
    if joined.strip():
        return joined
    if isinstance(content, str):
        return content

    message = body.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]

    for entry in body.get("messages") or []:
        if not isinstance(entry, dict):
            continue
        text = entry.get("content")
        if isinstance(text, str) and text.strip():
            return text
        for nested in text if isinstance(text, list) else []:
            if isinstance(nested, dict) and isinstance(nested.get("text"), str):
                return nested["text"]

    return ""
