"""Normalise provider responses into text, then into a review result.

Providers answer in different envelopes. Each extractor below recognises one
envelope and returns its text, or None if the response is not of that shape.
The first extractor that matches wins.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Extractor = Callable[[dict], Optional[str]]


def _from_candidates(data: dict) -> str | None:
    """Gemini: candidates[0].content.parts[*].text"""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list):
        return None
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    return "\n".join(texts) if texts else None


def _from_output_text(data: dict) -> str | None:
    """OpenAI Responses API convenience field."""
    text = data.get("output_text")
    if isinstance(text, str) and text.strip():
        return text
    return None


def _from_output_blocks(data: dict) -> str | None:
    """OpenAI Responses API: output[type=message].content[type=output_text].text"""
    output = data.get("output")
    if not isinstance(output, list):
        return None
    chunks = []
    for item in output:
        if not isinstance(item, dict) or item.get("type") != "message" or not isinstance(item.get("content"), list):
            continue
        for block in item["content"]:
            if isinstance(block, dict) and block.get("type") == "output_text" and isinstance(block.get("text"), str):
                chunks.append(block["text"])
    return "\n".join(chunks) if chunks else None


def _from_chat_message(data: dict) -> str | None:
    """OpenAI Chat Completions: choices[0].message.content"""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) and content else None


EXTRACTORS: tuple[Extractor, ...] = (
    _from_candidates,
    _from_output_text,
    _from_output_blocks,
    _from_chat_message,
)


def extract_response_text(data) -> str:
    """Return the model's text from any recognised response shape, or "" if none match."""
    if not isinstance(data, dict):
        return ""
    for extractor in EXTRACTORS:
        text = extractor(data)
        if text is not None:
            return text
    return ""


def _empty_result() -> dict:
    return {"issues": []}


@dataclass
class ParseResult:
    """Outcome of parsing the model's text.

    Parsing never raises: on failure ``value`` holds the empty result and
    ``error`` says why, so callers can treat it as "no issues".
    """

    value: dict = field(default_factory=_empty_result)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def issues(self) -> list:
        return self.value["issues"]


def parse_review_result(text: str) -> ParseResult:
    # Strip only an outer ```json ... ``` fence, never backticks inside values.
    cleaned = re.sub(r"^```(?:json)?\s*", "", (text or "").strip())
    cleaned = re.sub(r"\s*```$", "", cleaned.strip())
    if not cleaned:
        cleaned = "{}"

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse AI response as JSON, using empty result: %s", e)
        return ParseResult(error=str(e))

    if isinstance(parsed, list):
        return ParseResult(value={"issues": parsed})
    if not isinstance(parsed, dict):
        return ParseResult(error=f"expected a JSON object, got {type(parsed).__name__}")
    if not isinstance(parsed.get("issues"), list):
        logger.warning("Response did not contain a valid 'issues' array.")
        return ParseResult(value={**parsed, "issues": []})
    return ParseResult(value=parsed)
