"""
Unit Tests for the output formatter and statistics.
"""

import json
from datetime import datetime, timezone

import pytest

from llm.formatter import build_document, compute_statistics, format_review
from models.output import SCHEMA_VERSION
from models.platform import PlatformType
from models.review import (
    Category,
    ChangeSnapshot,
    NormalizedReview,
    PromptInfo,
    RepositorySnapshot,
    ReviewContext,
    ReviewRunSnapshot,
    ReviewSuggestion,
    Severity,
)

GENERATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context() -> ReviewContext:
    return ReviewContext(
        repository=RepositorySnapshot(
            id=1, name="payments", full_name="acme/payments",
            platform=PlatformType.GITLAB, platform_repo_id="100",
        ),
        merge_request=ChangeSnapshot(id=1007, iid=7, title="Add retry", author="jdoe"),
        review=ReviewRunSnapshot(
            id=11, reviewed_at=GENERATED_AT, llm_provider="OpenAI",
            llm_model="gpt-4o-mini", tokens_used=1000, duration_ms=1500,
        ),
    )


def _suggestion(path: str, severity=Severity.MEDIUM, category=Category.OTHER) -> ReviewSuggestion:
    return ReviewSuggestion(file_path=path, severity=severity, category=category, description="d")


class TestComputeStatistics:
    """Test aggregation over the suggestion list."""

    def test_counts_by_severity_and_category(self):
        # Arrange
        suggestions = [
            _suggestion("a.py", Severity.CRITICAL, Category.SECURITY),
            _suggestion("a.py", Severity.LOW, Category.STYLE),
            _suggestion("b.py", Severity.LOW, Category.STYLE),
        ]

        # Act
        stats = compute_statistics(suggestions)

        # Assert
        assert stats.total_issues == 3
        assert stats.by_severity.critical == 1
        assert stats.by_severity.low == 2
        assert stats.by_severity.high == 0
        assert stats.by_category.security == 1
        assert stats.by_category.style == 2

    def test_unknown_files_are_not_counted_as_affected(self):
        stats = compute_statistics([_suggestion("unknown"), _suggestion("a.py")])
        assert stats.total_issues == 2
        assert stats.files_affected == 1
        assert [f.file for f in stats.top_files] == ["a.py"]

    def test_top_files_limited_and_ties_keep_first_appearance(self):
        """
        GIVEN seven files where two tie on count
        WHEN computing statistics
        THEN at most five files are listed and ties keep first-seen order
        """
        paths = ["z.py", "y.py", "y.py", "x.py", "w.py", "v.py", "u.py", "t.py", "z.py"]
        stats = compute_statistics([_suggestion(p) for p in paths])

        assert len(stats.top_files) == 5
        assert [(f.file, f.issues) for f in stats.top_files[:2]] == [("z.py", 2), ("y.py", 2)]
        assert stats.top_files[2].file == "x.py"

    def test_empty_list(self):
        stats = compute_statistics([])
        assert stats.total_issues == 0
        assert stats.top_files == []


class TestBuildDocument:
    """Test the versioned review document."""

    def test_document_shape(self, context):
        review = NormalizedReview(
            summary="ok",
            score=82,
            suggestions=[_suggestion("a.py"), _suggestion("b.py")],
            strategy="fenced_json",
        )

        document = build_document(
            review, context, PromptInfo(source="repository", version="2.1"), generated_at=GENERATED_AT
        )

        assert document.schema_version == SCHEMA_VERSION
        assert document.result.quality_level.value == "good"
        assert [s.id for s in document.result.suggestions] == [1, 2]
        assert document.metadata.prompt_template == "repository"
        assert document.metadata.prompt_version == "2.1"
        assert document.metadata.custom_prompt_used is True
        assert document.metadata.parser_strategy == "fenced_json"
        assert document.metadata.parser_fallback_used is False

    def test_default_prompt_is_not_custom(self, context):
        review = NormalizedReview(summary="ok", score=50)
        document = build_document(review, context, generated_at=GENERATED_AT)
        assert document.metadata.custom_prompt_used is False


class TestFormatReview:
    def test_formatting_is_deterministic(self, context):
        """GIVEN the same review WHEN formatted twice THEN statistics blocks are identical."""
        review = NormalizedReview(
            summary="ok", score=64, suggestions=[_suggestion("a.py", Severity.HIGH, Category.LOGIC)]
        )

        first = json.loads(format_review(review, context, generated_at=GENERATED_AT))
        second = json.loads(format_review(review, context, generated_at=GENERATED_AT))

        assert first["statistics"] == second["statistics"]
        assert first == second
        assert first["statistics"]["by_severity"]["high"] == 1
        assert first["result"]["score"] == 64
