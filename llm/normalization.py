"""
Canonicalization of loosely-typed review fields.

LLMs answer with whatever vocabulary they like ("blocker", "vuln", "nit",
"code style", 150/100). Every function here is total: any input maps onto
the closed canonical set.
"""

from typing import Any

from models.review import Category, QualityLevel, Severity

SEVERITY_SYNONYMS: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "blocker": Severity.CRITICAL,
    "urgent": Severity.CRITICAL,
    "fatal": Severity.CRITICAL,
    "high": Severity.HIGH,
    "major": Severity.HIGH,
    "important": Severity.HIGH,
    "error": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "normal": Severity.MEDIUM,
    "low": Severity.LOW,
    "minor": Severity.LOW,
    "trivial": Severity.LOW,
    "info": Severity.LOW,
    "suggestion": Severity.LOW,
    "hint": Severity.LOW,
    "nit": Severity.LOW,
    "nitpick": Severity.LOW,
}

CATEGORY_SYNONYMS: dict[str, Category] = {
    "security": Category.SECURITY,
    "sec": Category.SECURITY,
    "vulnerability": Category.SECURITY,
    "vuln": Category.SECURITY,
    "performance": Category.PERFORMANCE,
    "perf": Category.PERFORMANCE,
    "efficiency": Category.PERFORMANCE,
    "optimization": Category.PERFORMANCE,
    "style": Category.STYLE,
    "formatting": Category.STYLE,
    "code style": Category.STYLE,
    "lint": Category.STYLE,
    "convention": Category.STYLE,
    "logic": Category.LOGIC,
    "bug": Category.LOGIC,
    "error": Category.LOGIC,
    "correctness": Category.LOGIC,
    "behavior": Category.LOGIC,
    "documentation": Category.DOCUMENTATION,
    "doc": Category.DOCUMENTATION,
    "docs": Category.DOCUMENTATION,
    "comment": Category.DOCUMENTATION,
    "comments": Category.DOCUMENTATION,
}

UNKNOWN_FILE = "unknown"
EMPTY_SUMMARY = "No summary provided"


def _fold(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).strip().lower().replace("_", " ").replace("-", " ").split())


def normalize_score(value: Any) -> int:
    """
    Coerce a score to an integer in [0, 100].

    Strings and floats are accepted; anything non-numeric counts as 0.
    """
    if isinstance(value, bool):
        return 0
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, score))


def normalize_severity(value: Any) -> Severity:
    """Map a severity label onto the canonical set; unknown labels are medium."""
    return SEVERITY_SYNONYMS.get(_fold(value), Severity.MEDIUM)


def normalize_category(value: Any) -> Category:
    """Map a category label onto the canonical set; unknown labels are other."""
    return CATEGORY_SYNONYMS.get(_fold(value), Category.OTHER)


def normalize_file_path(value: Any) -> str:
    path = str(value).strip() if value is not None else ""
    return path or UNKNOWN_FILE


def normalize_line_range(start: Any, end: Any) -> tuple[int, int]:
    """Return ``(start, end)`` as non-negative ints with ``end >= start``."""
    line_start = max(0, _to_int(start))
    line_end = max(0, _to_int(end))
    if line_end < line_start:
        line_end = line_start
    return line_start, line_end


def quality_level(score: int) -> QualityLevel:
    if score >= 90:
        return QualityLevel.EXCELLENT
    if score >= 75:
        return QualityLevel.GOOD
    if score >= 60:
        return QualityLevel.ACCEPTABLE
    if score >= 40:
        return QualityLevel.POOR
    return QualityLevel.CRITICAL


def _to_int(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
