"""
Output document models for MergeGuard.

The versioned JSON document persisted on every completed review and returned
by the review status endpoint.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .review import Category, QualityLevel, ReviewContext, Severity

SCHEMA_VERSION = "1.0"


class OutputSuggestion(BaseModel):
    id: int = Field(..., ge=1, description="1-based position in the result")
    file_path: str
    line_start: int
    line_end: int
    severity: Severity
    category: Category
    description: str
    suggestion: str = ""
    code_snippet: str = ""


class OutputResult(BaseModel):
    summary: str
    score: int
    quality_level: QualityLevel
    suggestions: list[OutputSuggestion] = Field(default_factory=list)


class SeverityBreakdown(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class CategoryBreakdown(BaseModel):
    security: int = 0
    performance: int = 0
    style: int = 0
    logic: int = 0
    documentation: int = 0
    other: int = 0


class FileIssueCount(BaseModel):
    file: str
    issues: int


class ReviewStatistics(BaseModel):
    """Aggregates derived from the suggestion list only."""

    total_issues: int = 0
    by_severity: SeverityBreakdown = Field(default_factory=SeverityBreakdown)
    by_category: CategoryBreakdown = Field(default_factory=CategoryBreakdown)
    files_affected: int = 0
    top_files: list[FileIssueCount] = Field(default_factory=list)


class OutputMetadata(BaseModel):
    prompt_template: str = "default"
    prompt_version: str = "1.0"
    custom_prompt_used: bool = False
    raw_response_available: bool = False
    parser_strategy: str = ""
    parser_fallback_used: bool = False


class ReviewDocument(BaseModel):
    """Top-level versioned review document."""

    schema_version: str = SCHEMA_VERSION
    generated_at: datetime
    context: ReviewContext
    result: OutputResult
    statistics: ReviewStatistics
    metadata: OutputMetadata
