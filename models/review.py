"""
Review models for MergeGuard.

Defines the canonical review result produced by the response parser and the
context snapshots the output formatter renders it with.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .platform import PlatformType


class Severity(str, Enum):
    """Canonical severity levels for review suggestions."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Category(str, Enum):
    """Canonical categories for review suggestions."""

    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    LOGIC = "logic"
    DOCUMENTATION = "documentation"
    OTHER = "other"


class QualityLevel(str, Enum):
    """Coarse quality band derived from the review score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    CRITICAL = "critical"


class ReviewSuggestion(BaseModel):
    """
    One normalized finding attached to a review.

    Every field is already canonical: severity and category are members of
    their closed enums, the file path is never empty and ``line_end`` is
    never smaller than ``line_start``.
    """

    file_path: str = Field(default="unknown", description="Path of the affected file")
    line_start: int = Field(default=0, ge=0, description="First affected line")
    line_end: int = Field(default=0, ge=0, description="Last affected line")
    severity: Severity = Field(default=Severity.MEDIUM, description="Canonical severity")
    category: Category = Field(default=Category.OTHER, description="Canonical category")
    description: str = Field(default="", description="What is wrong")
    suggestion: str = Field(default="", description="How to fix it")
    code_snippet: str = Field(default="", description="Optional code excerpt")


class NormalizedReview(BaseModel):
    """Canonical review produced from arbitrary LLM output."""

    summary: str = Field(..., description="Human-readable summary of the change")
    score: int = Field(..., ge=0, le=100, description="Quality score")
    suggestions: list[ReviewSuggestion] = Field(default_factory=list)
    strategy: str = Field(default="fenced_json", description="Parser strategy that matched")
    fallback_used: bool = Field(default=False, description="True when no JSON could be extracted")


# ============================================================================
# Context snapshots rendered into the output document
# ============================================================================


class RepositorySnapshot(BaseModel):
    id: int
    name: str = ""
    full_name: str = ""
    platform: PlatformType
    platform_repo_id: str = ""


class ChangeSnapshot(BaseModel):
    id: int
    iid: int
    title: str = ""
    author: str = ""
    source_branch: str = ""
    target_branch: str = ""
    web_url: str = ""


class ReviewRunSnapshot(BaseModel):
    id: int
    reviewed_at: datetime
    llm_provider: str = ""
    llm_model: str = ""
    tokens_used: int = 0
    duration_ms: int = 0


class ReviewContext(BaseModel):
    """Everything the formatter needs to know about where a review came from."""

    repository: RepositorySnapshot
    merge_request: ChangeSnapshot
    review: ReviewRunSnapshot


class PromptInfo(BaseModel):
    """Which prompt template produced the review."""

    source: str = Field(default="default", description="repository, custom or default")
    version: str = Field(default="1.0")

    @property
    def custom_prompt_used(self) -> bool:
        return self.source != "default"
