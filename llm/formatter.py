"""
Output formatter: canonical review plus context into the versioned document.
"""

from collections import Counter
from datetime import datetime, timezone

from llm.normalization import UNKNOWN_FILE, quality_level
from models.output import (
    CategoryBreakdown,
    FileIssueCount,
    OutputMetadata,
    OutputResult,
    OutputSuggestion,
    ReviewDocument,
    ReviewStatistics,
    SeverityBreakdown,
)
from models.review import NormalizedReview, PromptInfo, ReviewContext, ReviewSuggestion

TOP_FILES_LIMIT = 5


def compute_statistics(suggestions: list[ReviewSuggestion]) -> ReviewStatistics:
    """
    Aggregate the suggestion list.

    ``files_affected`` ignores suggestions without a real path. ``top_files``
    holds at most five files ordered by issue count, ties broken by the order
    in which each file first appeared.
    """
    severities = Counter(s.severity.value for s in suggestions)
    categories = Counter(s.category.value for s in suggestions)

    # Counter preserves insertion order, and sorted() is stable
    per_file = Counter(
        s.file_path for s in suggestions if s.file_path and s.file_path != UNKNOWN_FILE
    )
    ranked = sorted(per_file.items(), key=lambda item: item[1], reverse=True)

    return ReviewStatistics(
        total_issues=len(suggestions),
        by_severity=SeverityBreakdown(**severities),
        by_category=CategoryBreakdown(**categories),
        files_affected=len(per_file),
        top_files=[
            FileIssueCount(file=path, issues=count)
            for path, count in ranked[:TOP_FILES_LIMIT]
        ],
    )


def build_document(
    review: NormalizedReview,
    context: ReviewContext,
    prompt: PromptInfo | None = None,
    raw_response_available: bool = True,
    generated_at: datetime | None = None,
) -> ReviewDocument:
    prompt = prompt or PromptInfo()
    return ReviewDocument(
        generated_at=generated_at or datetime.now(timezone.utc),
        context=context,
        result=OutputResult(
            summary=review.summary,
            score=review.score,
            quality_level=quality_level(review.score),
            suggestions=[
                OutputSuggestion(id=index, **suggestion.model_dump())
                for index, suggestion in enumerate(review.suggestions, start=1)
            ],
        ),
        statistics=compute_statistics(review.suggestions),
        metadata=OutputMetadata(
            prompt_template=prompt.source,
            prompt_version=prompt.version,
            custom_prompt_used=prompt.custom_prompt_used,
            raw_response_available=raw_response_available,
            parser_strategy=review.strategy,
            parser_fallback_used=review.fallback_used,
        ),
    )


def format_review(
    review: NormalizedReview,
    context: ReviewContext,
    prompt: PromptInfo | None = None,
    raw_response_available: bool = True,
    generated_at: datetime | None = None,
) -> str:
    """
    Render the versioned JSON document for a review.

    Args:
        review: Normalized review
        context: Repository, change and run snapshots
        prompt: Which prompt template produced the review
        raw_response_available: Whether the raw model text is stored alongside
        generated_at: Override for the generation timestamp

    Returns:
        Indented JSON text of a ``ReviewDocument``
    """
    document = build_document(review, context, prompt, raw_response_available, generated_at)
    return document.model_dump_json(indent=2)
