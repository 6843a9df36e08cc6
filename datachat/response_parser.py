"""
Recover an AnalysisResult from whatever text the model sent back.

The parser is total: fenced JSON, raw JSON, JSON buried in prose and plain
prose all yield a displayable result, and no exception ever leaves
``parse_ai_response``. Steps, each tried only when the previous one failed:

1. strip a leading/trailing markdown code fence,
2. strict JSON parse of the cleaned text,
3. parse of the first balanced ``{...}`` span found in the raw text,
4. plain-text fallback carrying the raw text as the message.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from datachat.llm_gate import is_analysis_reply, validate_schema
from datachat.llm_schemas import ANALYSIS_RESULT_SCHEMA
from datachat.models import AnalysisResult

logger = logging.getLogger(__name__)

FALLBACK_INSIGHT = "Analysis completed"

_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\s*```\s*$")


def strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return cleaned
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in ``text``.

    The span starts at the first ``{`` and ends at the brace that closes it,
    so nested objects are kept whole (outermost match). Braces inside JSON
    string literals are ignored. Returns None when there is no ``{`` or it is
    never closed.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [
            item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
            for item in value
            if item is not None
        ]
    return []


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    metrics: dict[str, str] = {}
    for key, item in value.items():
        if item is None:
            continue
        metrics[str(key)] = item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
    return metrics


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def map_reply(payload: dict[str, Any]) -> AnalysisResult:
    result = AnalysisResult(
        message=payload["message"],
        reformulated_query=_optional_text(payload.get("reformulated_query")),
        insights=_string_list(payload.get("insights")),
        recommendations=_string_list(payload.get("recommendations")),
        metrics=_string_map(payload.get("metrics")),
    )
    validate_schema(result.model_dump(), ANALYSIS_RESULT_SCHEMA)
    return result


def _try_parse(candidate: str) -> AnalysisResult | None:
    # ValueError also covers integer literals past the int-to-str digit limit.
    try:
        payload = json.loads(candidate)
        if not is_analysis_reply(payload):
            return None
        return map_reply(payload)
    except (ValueError, RecursionError):
        return None


def parse_ai_response(raw: str | None) -> AnalysisResult:
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    logger.debug("Raw AI response: %s", text)

    cleaned = strip_code_fence(text)
    result = _try_parse(cleaned)
    if result is not None:
        return result

    span = extract_json_object(text)
    if span is not None:
        result = _try_parse(span)
        if result is not None:
            logger.info("Recovered JSON object embedded in model reply")
            return result

    logger.info("Model reply carried no structured data; returning it as plain text")
    return AnalysisResult(message=text, insights=[FALLBACK_INSIGHT])
