"""
Unit Tests for GitHubAdapter

Tests webhook parsing, HMAC verification and the PyGithub calls with the
client mocked.
"""

import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
from github import GithubException

from adapters.base import EmptyDiffError
from adapters.github import GitHubAdapter
from models.platform import PlatformType
from tests.fixtures import github_pull_request_payload


def _signature(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestGitHubAdapterParseWebhook:
    """Test GitHubAdapter.parse_webhook() method."""

    def test_parse_pr_opened_event(self):
        """
        GIVEN a GitHub pull_request opened webhook payload
        WHEN calling parse_webhook()
        THEN it should return a ChangeDescriptor with PR data
        """
        # Arrange
        adapter = GitHubAdapter(token="test_token")

        # Act
        change = adapter.parse_webhook(github_pull_request_payload())

        # Assert
        assert change.platform == PlatformType.GITHUB
        assert change.repository_external_id == "123456789"
        assert change.change_id == 9001
        assert change.change_number == 42
        assert change.author == "octocat"
        assert change.head_commit_id == "b" * 40
        assert change.target_branch == "main"

    def test_parse_without_pull_request_raises(self):
        with pytest.raises(ValueError):
            GitHubAdapter().parse_webhook({"action": "opened", "repository": {"id": 1}})

    def test_is_change_event_uses_header(self):
        adapter = GitHubAdapter()
        payload = github_pull_request_payload()
        assert adapter.is_change_event(payload, {"x-github-event": "pull_request"}) is True
        assert adapter.is_change_event(payload, {"x-github-event": "issues"}) is False
        assert adapter.is_change_event(payload, {}) is True

    @pytest.mark.parametrize(
        "action, state, expected",
        [
            ("opened", "open", True),
            ("synchronize", "open", True),
            ("closed", "closed", False),
            ("reopened", "open", False),
            ("edited", "open", False),
        ],
    )
    def test_should_trigger_review(self, action, state, expected):
        adapter = GitHubAdapter()
        change = adapter.parse_webhook(github_pull_request_payload(action=action, state=state))
        assert adapter.should_trigger_review(change) is expected


class TestGitHubAdapterVerifySignature:
    def test_valid_signature(self):
        body = b'{"action": "opened"}'
        headers = {"x-hub-signature-256": _signature(body, "s3cret")}
        assert GitHubAdapter().verify_signature(body, headers, "s3cret") is True

    def test_tampered_body(self):
        headers = {"x-hub-signature-256": _signature(b"original", "s3cret")}
        assert GitHubAdapter().verify_signature(b"tampered", headers, "s3cret") is False

    def test_bad_format_and_missing_header(self):
        adapter = GitHubAdapter()
        assert adapter.verify_signature(b"{}", {"x-hub-signature-256": "md5=abc"}, "s3cret") is False
        assert adapter.verify_signature(b"{}", {}, "s3cret") is False


class TestGitHubAdapterApi:
    """Test diff and comment calls against a mocked PyGithub client."""

    def _adapter_with_pr(self, files=None):
        adapter = GitHubAdapter(token="ghp")
        pr = MagicMock()
        pr.get_files.return_value = files or []
        repo = MagicMock()
        repo.get_pull.return_value = pr
        adapter._client = MagicMock()
        adapter._client.get_repo.return_value = repo
        return adapter, pr

    def test_get_diff_builds_file_blocks(self):
        files = [
            MagicMock(filename="app.py", patch="@@ -1 +1 @@\n-a\n+b"),
            MagicMock(filename="logo.png", patch=None),
        ]
        adapter, _ = self._adapter_with_pr(files)

        diff = adapter.get_diff("123456789", 42)

        assert diff.startswith("diff --git a/app.py b/app.py\n--- a/app.py\n+++ b/app.py\n")
        assert "logo.png" not in diff
        adapter._client.get_repo.assert_called_once_with(123456789)

    def test_get_diff_by_full_name(self):
        adapter, _ = self._adapter_with_pr([MagicMock(filename="a", patch="+x")])
        adapter.get_diff("octocat/test-repo", 42)
        adapter._client.get_repo.assert_called_once_with("octocat/test-repo")

    def test_get_diff_without_patches(self):
        adapter, _ = self._adapter_with_pr([MagicMock(filename="logo.png", patch=None)])
        with pytest.raises(EmptyDiffError):
            adapter.get_diff("1", 42)

    def test_api_error_propagates(self):
        adapter = GitHubAdapter(token="ghp")
        adapter._client = MagicMock()
        adapter._client.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, None)
        with pytest.raises(GithubException):
            adapter.get_diff("1", 42)

    def test_post_comment_returns_url(self):
        adapter, pr = self._adapter_with_pr()
        pr.create_issue_comment.return_value = MagicMock(html_url="https://github.com/c/1")

        reference = adapter.post_comment("1", 42, "## review")

        assert reference == "https://github.com/c/1"
        pr.create_issue_comment.assert_called_once_with("## review")
