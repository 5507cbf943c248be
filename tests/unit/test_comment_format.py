"""
Unit Tests for the Markdown review comment.
"""

from adapters.base import COMMENT_BANNER
from adapters.gitlab import GitLabAdapter
from models.review import Category, NormalizedReview, ReviewSuggestion, Severity


class TestFormatComment:
    def test_comment_sections(self):
        """
        GIVEN a review with one located suggestion
        WHEN formatting the comment
        THEN score, statistics and the suggestion block are rendered
        """
        # Arrange
        review = NormalizedReview(
            summary="Solid change.",
            score=88,
            suggestions=[
                ReviewSuggestion(
                    file_path="app/models.py",
                    line_start=10,
                    line_end=12,
                    severity=Severity.CRITICAL,
                    category=Category.SECURITY,
                    description="Password stored in plain text.",
                    suggestion="Hash it with bcrypt.",
                    code_snippet="user.password = raw",
                )
            ],
        )

        # Act
        body = GitLabAdapter().format_comment(review)

        # Assert
        assert body.startswith("## 🤖 AI Code Review")
        assert "**Score:** 88/100 (good)" in body
        assert "Solid change." in body
        assert "1 issues found (critical: 1, high: 0, medium: 0, low: 0)" in body
        assert "### 1. `app/models.py:10-12`" in body
        assert "**CRITICAL** · security" in body
        assert "**Suggestion:** Hash it with bcrypt." in body
        assert "```\nuser.password = raw\n```" in body
        assert body.endswith(COMMENT_BANNER)

    def test_unlocated_suggestion_has_bare_path(self):
        review = NormalizedReview(
            summary="s", score=50, suggestions=[ReviewSuggestion(description="vague", suggestion="vague")]
        )

        body = GitLabAdapter().format_comment(review)

        assert "### 1. `unknown`" in body
        assert "**Suggestion:**" not in body
