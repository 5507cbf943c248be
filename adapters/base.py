"""
Base adapter interface for source-control platform abstraction.

Defines the contract that all platform adapters must implement: webhook
parsing and authentication on the ingestion side, diff retrieval and comment
posting on the worker side.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from llm.formatter import compute_statistics
from llm.normalization import quality_level
from models.platform import ChangeDescriptor, PlatformType
from models.review import NormalizedReview

COMMENT_BANNER = "\n---\n*This review was generated automatically by MergeGuard.*\n"


class EmptyDiffError(ValueError):
    """The change exists but carries no reviewable diff."""


_SEVERITY_BADGES = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🔵",
}


class GitPlatformAdapter(ABC):
    """
    Abstract base class for source-control adapters.

    Parsing and authentication need no credentials, so the ingestion path
    builds adapters without a token. Diff and comment calls require one.
    """

    platform: PlatformType

    def __init__(self, base_url: str = "", token: str = "", timeout: int = 30) -> None:
        """
        Initialize adapter.

        Args:
            base_url: Host URL (e.g. https://gitlab.example.com)
            token: API access token
            timeout: Timeout in seconds for outbound HTTP calls
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    @abstractmethod
    def is_change_event(self, payload: dict, headers: Mapping[str, str]) -> bool:
        """
        Shallow check of the event-kind discriminator.

        Args:
            payload: Decoded JSON body
            headers: Request headers with lower-cased names

        Returns:
            True if the payload is a merge/pull request event
        """
        pass

    @abstractmethod
    def parse_webhook(self, payload: dict) -> ChangeDescriptor:
        """
        Parse and normalize a change event payload.

        Args:
            payload: Decoded JSON body already known to be a change event

        Returns:
            Normalized ChangeDescriptor

        Raises:
            ValueError: If the payload is missing required fields
        """
        pass

    @abstractmethod
    def should_trigger_review(self, change: ChangeDescriptor) -> bool:
        """Return True for actions that open or update an open change."""
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        """
        Verify webhook authenticity against a shared secret.

        Args:
            body: Raw request body bytes
            headers: Request headers with lower-cased names
            secret: Configured webhook secret

        Returns:
            True if the delivery carries a matching token or signature
        """
        pass

    @abstractmethod
    def get_diff(self, platform_repo_id: str, change_number: int) -> str:
        """
        Fetch the unified diff of a change.

        Args:
            platform_repo_id: Repository id on the platform
            change_number: MR iid / PR number

        Returns:
            Unified diff text

        Raises:
            requests.HTTPError / GithubException: If the API call fails
            EmptyDiffError: If the change has no diff content
        """
        pass

    @abstractmethod
    def post_comment(self, platform_repo_id: str, change_number: int, body: str) -> str | None:
        """
        Post a Markdown comment on a change.

        Returns:
            Reference to the created comment (URL or id) when available
        """
        pass

    def format_comment(self, review: NormalizedReview) -> str:
        """Render a normalized review as a Markdown comment."""
        stats = compute_statistics(review.suggestions)
        level = quality_level(review.score)

        sections = [
            "## 🤖 AI Code Review",
            "",
            f"**Score:** {review.score}/100 ({level.value})",
            "",
            review.summary,
            "",
            f"**Statistics:** {stats.total_issues} issues found"
            f" (critical: {stats.by_severity.critical}, high: {stats.by_severity.high},"
            f" medium: {stats.by_severity.medium}, low: {stats.by_severity.low})",
        ]

        for index, suggestion in enumerate(review.suggestions, start=1):
            location = suggestion.file_path
            if suggestion.line_start:
                location += f":{suggestion.line_start}"
                if suggestion.line_end > suggestion.line_start:
                    location += f"-{suggestion.line_end}"
            badge = _SEVERITY_BADGES.get(suggestion.severity.value, "")
            sections.append(f"\n### {index}. `{location}`\n")
            sections.append(
                f"{badge} **{suggestion.severity.value.upper()}** · {suggestion.category.value}\n"
            )
            sections.append(f"{suggestion.description}\n")
            if suggestion.suggestion and suggestion.suggestion != suggestion.description:
                sections.append(f"**Suggestion:** {suggestion.suggestion}\n")
            if suggestion.code_snippet:
                sections.append(f"```\n{suggestion.code_snippet}\n```\n")

        sections.append(COMMENT_BANNER)
        return "\n".join(sections)
