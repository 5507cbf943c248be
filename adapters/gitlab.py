"""
GitLab platform adapter implementation.

Implements GitPlatformAdapter for GitLab merge requests: ``Merge Request Hook``
parsing, ``X-Gitlab-Token`` verification, diff retrieval through the
``/changes`` endpoint and note posting.
"""

import hmac
from collections.abc import Mapping
from urllib.parse import quote

import requests
from loguru import logger
from pydantic import ValidationError

from adapters.base import EmptyDiffError, GitPlatformAdapter
from models.platform import ChangeDescriptor, GitLabMergeRequestEvent, PlatformType

TRIGGER_ACTIONS = frozenset({"open", "update"})
OPEN_STATE = "opened"


class GitLabAdapter(GitPlatformAdapter):
    """
    GitLab implementation of GitPlatformAdapter.

    Talks to the REST API v4 with a ``PRIVATE-TOKEN`` header.
    """

    platform = PlatformType.GITLAB

    def _headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self.token, "Content-Type": "application/json"}

    def _mr_url(self, platform_repo_id: str, change_number: int) -> str:
        project = quote(str(platform_repo_id), safe="")
        return f"{self.base_url}/api/v4/projects/{project}/merge_requests/{change_number}"

    def is_change_event(self, payload: dict, headers: Mapping[str, str]) -> bool:
        return payload.get("object_kind") == "merge_request"

    def parse_webhook(self, payload: dict) -> ChangeDescriptor:
        """
        Parse a GitLab merge request event.

        Args:
            payload: GitLab ``Merge Request Hook`` body

        Returns:
            Normalized ChangeDescriptor

        Raises:
            ValueError: If project or object_attributes are missing or malformed
        """
        try:
            event = GitLabMergeRequestEvent.model_validate(payload)
        except ValidationError as e:
            raise ValueError(f"Invalid GitLab merge request payload: {e.error_count()} errors") from e

        attrs = event.object_attributes
        return ChangeDescriptor(
            platform=PlatformType.GITLAB,
            repository_external_id=str(event.project.id),
            change_id=attrs.id,
            change_number=attrs.iid,
            action=attrs.action,
            state=attrs.state,
            title=attrs.title,
            author=event.user.username,
            source_branch=attrs.source_branch,
            target_branch=attrs.target_branch,
            web_url=attrs.url,
            head_commit_id=attrs.last_commit.id if attrs.last_commit else "",
        )

    def should_trigger_review(self, change: ChangeDescriptor) -> bool:
        return change.action in TRIGGER_ACTIONS and change.state == OPEN_STATE

    def verify_signature(self, body: bytes, headers: Mapping[str, str], secret: str) -> bool:
        """
        Compare the ``X-Gitlab-Token`` header with the configured secret.

        GitLab sends the secret itself rather than an HMAC, so the check is a
        constant-time string comparison.
        """
        token = headers.get("x-gitlab-token", "")
        if not token:
            logger.warning("Missing X-Gitlab-Token header")
            return False

        is_valid = hmac.compare_digest(token.encode(), secret.encode())
        if not is_valid:
            logger.warning("Invalid GitLab webhook token")
        return is_valid

    def get_diff(self, platform_repo_id: str, change_number: int) -> str:
        """
        Fetch the merge request diff from ``/changes``.

        Returns:
            Concatenated ``--- a/ +++ b/`` blocks of every changed file

        Raises:
            requests.HTTPError: If the API returns a non-200 status
            EmptyDiffError: If no file in the merge request has diff content
        """
        url = f"{self._mr_url(platform_repo_id, change_number)}/changes"
        response = requests.get(url, headers=self._headers(), timeout=self.timeout)
        if response.status_code != 200:
            logger.error(f"GitLab API error {response.status_code}: {response.text[:500]}")
            response.raise_for_status()

        blocks = []
        for change in response.json().get("changes", []):
            diff = change.get("diff", "")
            if diff:
                blocks.append(
                    f"--- a/{change.get('old_path', '')}\n+++ b/{change.get('new_path', '')}\n{diff}\n"
                )

        if not blocks:
            raise EmptyDiffError("no diff content found in merge request")
        return "".join(blocks)

    def post_comment(self, platform_repo_id: str, change_number: int, body: str) -> str | None:
        """
        Post a note on the merge request.

        Raises:
            requests.HTTPError: If the API does not answer 201 Created
        """
        url = f"{self._mr_url(platform_repo_id, change_number)}/notes"
        response = requests.post(url, headers=self._headers(), json={"body": body}, timeout=self.timeout)
        if response.status_code != 201:
            logger.error(f"GitLab API error {response.status_code}: {response.text[:500]}")
            response.raise_for_status()
            raise requests.HTTPError(
                f"Unexpected GitLab status {response.status_code} when posting note",
                response=response,
            )

        note_id = response.json().get("id")
        logger.info(f"Posted GitLab note {note_id} on MR !{change_number}")
        return str(note_id) if note_id is not None else None
