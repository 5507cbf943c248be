"""
GitHub platform adapter implementation.

Implements GitPlatformAdapter for GitHub pull requests, handling webhook
parsing, HMAC signature verification, diff fetching and comment posting.
"""

import hashlib
import hmac
from collections.abc import Mapping

from github import Auth, Github, GithubException
from loguru import logger
from pydantic import ValidationError

from adapters.base import EmptyDiffError, GitPlatformAdapter
from models.platform import ChangeDescriptor, GitHubPullRequestEvent, PlatformType

TRIGGER_ACTIONS = frozenset({"opened", "synchronize"})
OPEN_STATE = "open"
PUBLIC_API_URL = "https://api.github.com"


class GitHubAdapter(GitPlatformAdapter):
    """
    GitHub implementation of GitPlatformAdapter.

    Uses PyGithub for API calls; GitHub Enterprise is supported through
    ``base_url``.
    """

    platform = PlatformType.GITHUB

    def __init__(self, base_url: str = "", token: str = "", timeout: int = 30) -> None:
        super().__init__(base_url or PUBLIC_API_URL, token, timeout)
        self._client: Github | None = None

    @property
    def client(self) -> Github:
        if self._client is None:
            self._client = Github(
                auth=Auth.Token(self.token) if self.token else None,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def _get_repo(self, platform_repo_id: str):
        repo_ref = str(platform_repo_id)
        return self.client.get_repo(int(repo_ref) if repo_ref.isdigit() else repo_ref)

    def is_change_event(self, payload: dict, headers: Mapping[str, str]) -> bool:
        event = headers.get("x-github-event")
        if event is not None:
            return event == "pull_request"
        return "pull_request" in payload

    def parse_webhook(self, payload: dict) -> ChangeDescriptor:
        """
        Parse a GitHub pull_request event.

        Args:
            payload: GitHub webhook payload

        Returns:
            Normalized ChangeDescriptor

        Raises:
            ValueError: If pull_request or repository are missing or malformed
        """
        try:
            event = GitHubPullRequestEvent.model_validate(payload)
        except ValidationError as e:
            raise ValueError(f"Invalid GitHub pull_request payload: {e.error_count()} errors") from e

        pr = event.pull_request
        return ChangeDescriptor(
            platform=PlatformType.GITHUB,
            repository_external_id=str(event.repository.id),
            change_id=pr.id,
            change_number=pr.number,
            action=event.action,
            state=pr.state,
            title=pr.title,
            author=pr.user.login,
            source_branch=pr.head.ref,
            target_branch=pr.base.ref,
            web_url=pr.html_url,
            head_commit_id=pr.head.sha,
        )

    def should_trigger_review(self, change: ChangeDescriptor) -> bool:
        return change.action in TRIGGER_ACTIONS and change.state == OPEN_STATE

    def verify_signature(self, body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        """
        Verify GitHub webhook HMAC-SHA256 signature.

        Args:
            body: Raw request body bytes
            headers: Request headers; ``x-hub-signature-256`` is checked
            secret: Webhook secret

        Returns:
            True if the signature matches
        """
        signature = headers.get("x-hub-signature-256", "")
        if not signature:
            logger.warning("Missing X-Hub-Signature-256 header")
            return False

        # GitHub uses format: sha256=<hash>
        if not signature.startswith("sha256="):
            logger.warning(f"Invalid signature format: {signature[:20]}...")
            return False

        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        is_valid = hmac.compare_digest(expected, signature[len("sha256="):])
        if not is_valid:
            logger.warning("Invalid GitHub webhook signature")
        return is_valid

    def get_diff(self, platform_repo_id: str, change_number: int) -> str:
        """
        Build a unified diff from the pull request's file patches.

        Raises:
            GithubException: If the API call fails
            EmptyDiffError: If no file carries a patch
        """
        try:
            pr = self._get_repo(platform_repo_id).get_pull(change_number)
            blocks = [
                f"diff --git a/{f.filename} b/{f.filename}\n--- a/{f.filename}\n+++ b/{f.filename}\n{f.patch}\n"
                for f in pr.get_files()
                if f.patch
            ]
        except GithubException as e:
            logger.error(f"GitHub API error: {e}")
            raise

        if not blocks:
            raise EmptyDiffError("no diff content found in pull request")
        return "".join(blocks)

    def post_comment(self, platform_repo_id: str, change_number: int, body: str) -> str | None:
        """
        Post the review as a pull request conversation comment.

        Raises:
            GithubException: If the API call fails
        """
        try:
            pr = self._get_repo(platform_repo_id).get_pull(change_number)
            comment = pr.create_issue_comment(body)
        except GithubException as e:
            logger.error(f"Failed to post GitHub comment: {e}")
            raise

        logger.info(f"Posted GitHub comment on PR #{change_number}")
        return comment.html_url
