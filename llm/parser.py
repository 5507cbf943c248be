"""
Response parser: arbitrary LLM text in, canonical ``NormalizedReview`` out.

Strategies run in order and the first one that yields a review-shaped JSON
object wins. When none does, the free-text heuristics build a best-effort
review from prose. Normalization is applied to every result regardless of
which strategy produced it.
"""

import json
import re
from collections.abc import Callable
from typing import Any

from loguru import logger

from llm.normalization import (
    EMPTY_SUMMARY,
    UNKNOWN_FILE,
    normalize_category,
    normalize_file_path,
    normalize_line_range,
    normalize_score,
    normalize_severity,
)
from models.review import Category, NormalizedReview, ReviewSuggestion, Severity

MAX_TEXT_SUGGESTIONS = 20
UNPARSED_SUMMARY = "Unable to parse review summary"
REVIEW_KEYS = frozenset({"summary", "score", "suggestions", "issues"})

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(\{.*?\})\s*\n?```", re.DOTALL | re.IGNORECASE)

_SUMMARY_LINE_RE = re.compile(r"^[ \t#*>]*(?:summary|overall)\s*\**\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_SUMMARY_HEADER_RE = re.compile(
    r"^#+\s*(?:summary|overall)\s*\n+(.+?)(?:\n\s*\n|\n#|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_SCORE_RES = (
    re.compile(r"score\s*:\s*(\d+)", re.IGNORECASE),
    re.compile(r"quality score\s*:\s*(\d+)", re.IGNORECASE),
    re.compile(r"rating\s*:\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*/\s*100"),
)
_LIST_ITEM_RE = re.compile(r"^[ \t]*(?:\d+\.|[-*])[ \t]+(.+)$", re.MULTILINE)
_FILE_RE = re.compile(r"(?:file|path)\s*:\s*`?([^\s`]+)", re.IGNORECASE)
_LINE_RE = re.compile(r"lines?\s*(\d+)(?:\s*-\s*(\d+))?", re.IGNORECASE)


class ResponseParseError(Exception):
    """Raised when the model output is empty or not text at all."""


# ============================================================================
# JSON extraction strategies
# ============================================================================


def _load_object(candidate: str) -> dict | None:
    try:
        data = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def _balanced_span(text: str, start: int) -> str | None:
    """Return the ``{...}`` span opening at ``start``, skipping braces inside strings."""
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


def extract_fenced_json(text: str) -> dict | None:
    """A JSON object inside a markdown code fence."""
    for match in _FENCE_RE.finditer(text):
        data = _load_object(match.group(1))
        if data is not None:
            return data
    return None


def extract_balanced_json(text: str) -> dict | None:
    """The brace-balanced object that starts at the first ``{``."""
    start = text.find("{")
    if start < 0:
        return None
    span = _balanced_span(text, start)
    return _load_object(span) if span else None


def extract_embedded_json(text: str) -> dict | None:
    """Any balanced object in the text that carries review-shaped keys."""
    start = text.find("{")
    while start >= 0:
        span = _balanced_span(text, start)
        if span:
            data = _load_object(span)
            if data is not None and REVIEW_KEYS & data.keys():
                return data
        start = text.find("{", start + 1)
    return None


JSON_STRATEGIES: list[tuple[str, Callable[[str], dict | None]]] = [
    ("fenced_json", extract_fenced_json),
    ("balanced_json", extract_balanced_json),
    ("embedded_json", extract_embedded_json),
]


# ============================================================================
# Mapping JSON onto the canonical model
# ============================================================================


def _first_present(item: dict, *keys: str) -> Any:
    """Value of the first key that is present and non-empty."""
    for key in keys:
        value = item.get(key)
        if value not in (None, "", 0):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _suggestion_from_mapping(item: Any) -> ReviewSuggestion:
    if not isinstance(item, dict):
        return ReviewSuggestion(file_path=UNKNOWN_FILE, description=_text(item))

    line_start, line_end = normalize_line_range(
        _first_present(item, "line_start", "line"),
        _first_present(item, "line_end"),
    )
    return ReviewSuggestion(
        file_path=normalize_file_path(_first_present(item, "file_path", "file")),
        line_start=line_start,
        line_end=line_end,
        severity=normalize_severity(item.get("severity")),
        category=normalize_category(item.get("category")),
        description=_text(_first_present(item, "description", "message")),
        suggestion=_text(_first_present(item, "suggestion", "recommendation", "fix")),
        code_snippet=_text(_first_present(item, "code_snippet", "code")),
    )


def _is_review_shaped(data: dict) -> bool:
    items = data.get("suggestions") or data.get("issues")
    return bool(
        _text(data.get("summary"))
        or normalize_score(data.get("score")) > 0
        or (isinstance(items, list) and items)
    )


def review_from_mapping(data: dict, strategy: str = "fenced_json") -> NormalizedReview:
    """Build a normalized review from a decoded JSON object."""
    items = data.get("suggestions")
    if not items:
        items = data.get("issues")
    if not isinstance(items, list):
        items = []

    return NormalizedReview(
        summary=_text(data.get("summary")) or EMPTY_SUMMARY,
        score=normalize_score(data.get("score")),
        suggestions=[_suggestion_from_mapping(item) for item in items],
        strategy=strategy,
        fallback_used=False,
    )


# ============================================================================
# Free-text fallback
# ============================================================================


def extract_summary(text: str) -> str:
    match = _SUMMARY_LINE_RE.search(text)
    if match:
        return match.group(1).strip(" *")
    match = _SUMMARY_HEADER_RE.search(text)
    if match:
        return match.group(1).strip()
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
    return paragraphs[0] if paragraphs else ""


def extract_score(text: str) -> int:
    for pattern in _SCORE_RES:
        match = pattern.search(text)
        if match:
            score = int(match.group(1))
            if 0 <= score <= 100:
                return score

    lowered = text.lower()
    if "excellent" in lowered or "perfect" in lowered:
        return 90
    if "good" in lowered:
        return 75
    if "issue" in lowered or "problem" in lowered:
        return 60
    return 70


def detect_severity(text: str) -> Severity:
    lowered = text.lower()
    if any(word in lowered for word in ("critical", "blocker", "fatal")):
        return Severity.CRITICAL
    if any(word in lowered for word in ("security", "vulnerability", "major", "important")):
        return Severity.HIGH
    if any(word in lowered for word in ("minor", "trivial", "style", "formatting", "hint")):
        return Severity.LOW
    return Severity.MEDIUM


def detect_category(text: str) -> Category:
    lowered = text.lower()
    if any(word in lowered for word in ("security", "vulnerability", "injection", "xss")):
        return Category.SECURITY
    if any(word in lowered for word in ("performance", "slow", "optimize")):
        return Category.PERFORMANCE
    if any(word in lowered for word in ("style", "format", "naming", "convention")):
        return Category.STYLE
    if any(word in lowered for word in ("logic", "bug", "error", "incorrect")):
        return Category.LOGIC
    if any(word in lowered for word in ("documentation", "comment", "doc")):
        return Category.DOCUMENTATION
    return Category.OTHER


def extract_suggestions(text: str) -> list[ReviewSuggestion]:
    suggestions: list[ReviewSuggestion] = []
    for match in _LIST_ITEM_RE.finditer(text):
        item = match.group(1).strip()
        file_path = UNKNOWN_FILE
        line_start = line_end = 0

        file_match = _FILE_RE.search(item)
        if file_match:
            file_path = file_match.group(1).rstrip(",.;:")
        line_match = _LINE_RE.search(item)
        if line_match:
            line_start, line_end = normalize_line_range(
                line_match.group(1), line_match.group(2) or line_match.group(1)
            )

        suggestions.append(
            ReviewSuggestion(
                file_path=file_path,
                line_start=line_start,
                line_end=line_end,
                severity=detect_severity(item),
                category=detect_category(item),
                description=item,
                suggestion=item,
            )
        )
        if len(suggestions) >= MAX_TEXT_SUGGESTIONS:
            break
    return suggestions


def parse_free_text(text: str) -> NormalizedReview:
    return NormalizedReview(
        summary=extract_summary(text) or UNPARSED_SUMMARY,
        score=extract_score(text),
        suggestions=extract_suggestions(text),
        strategy="free_text",
        fallback_used=True,
    )


# ============================================================================
# Entry point
# ============================================================================


def parse_review(raw_text: Any) -> NormalizedReview:
    """
    Turn raw model output into a normalized review.

    Args:
        raw_text: The assistant message content

    Returns:
        NormalizedReview tagged with the strategy that produced it

    Raises:
        ResponseParseError: If the input is not text or is blank
    """
    if not isinstance(raw_text, str):
        raise ResponseParseError(f"expected text response, got {type(raw_text).__name__}")
    text = raw_text.strip()
    if not text:
        raise ResponseParseError("empty response from model")

    for name, strategy in JSON_STRATEGIES:
        data = strategy(text)
        if data is not None and _is_review_shaped(data):
            logger.debug(f"Parsed model response with {name}")
            return review_from_mapping(data, strategy=name)

    logger.info("No JSON review found in model response, using free-text fallback")
    return parse_free_text(text)
