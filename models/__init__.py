"""
Models package for MergeGuard.

Exports the Pydantic models used for webhook parsing, the canonical review
result and the versioned output document. SQLAlchemy tables live in
``models.tables``.
"""

# Platform models (normalized webhook payloads, enums)
from .platform import (
    ChangeDescriptor,
    EventStatus,
    PlatformType,
    ReviewStatus,
    ValidationOutcome,
)

# Review models (canonical result, formatter context)
from .review import (
    Category,
    NormalizedReview,
    PromptInfo,
    QualityLevel,
    ReviewContext,
    ReviewSuggestion,
    Severity,
)

# Output document
from .output import SCHEMA_VERSION, ReviewDocument, ReviewStatistics

__all__ = [
    # Platform
    "PlatformType",
    "ReviewStatus",
    "EventStatus",
    "ValidationOutcome",
    "ChangeDescriptor",
    # Review
    "Severity",
    "Category",
    "QualityLevel",
    "ReviewSuggestion",
    "NormalizedReview",
    "ReviewContext",
    "PromptInfo",
    # Output
    "SCHEMA_VERSION",
    "ReviewDocument",
    "ReviewStatistics",
]
