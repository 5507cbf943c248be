"""
Unit Tests for EventValidator

Exercises every outcome of webhook validation against a seeded catalog.
"""

import hashlib
import hmac

import pytest

from models.platform import PlatformType, ValidationOutcome
from models.tables import GitPlatformConfig, LLMProvider, Repository
from services.event_validator import EventValidator, detect_platform, normalize_headers
from tests.fixtures import (
    GITHUB_HEADERS,
    GITLAB_HEADERS,
    encode,
    github_pull_request_payload,
    github_push_payload,
    gitlab_merge_request_payload,
)


def _github_signature(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestDetectPlatform:
    def test_headers_identify_platform(self):
        assert detect_platform(normalize_headers(GITLAB_HEADERS)) == PlatformType.GITLAB
        assert detect_platform(normalize_headers(GITHUB_HEADERS)) == PlatformType.GITHUB
        assert detect_platform({"content-type": "application/json"}) is None


class TestEventValidatorOutcomes:
    """Test ignored/rejected/accepted classification."""

    def test_gitlab_open_is_accepted(self, validator, seeded):
        # Act
        result = validator.validate(encode(gitlab_merge_request_payload()), GITLAB_HEADERS)

        # Assert
        assert result.outcome == ValidationOutcome.ACCEPTED
        assert result.accepted is True
        assert result.platform == PlatformType.GITLAB
        assert result.change.change_number == 7
        assert result.repository.id == seeded["gitlab_repo"]

    def test_github_synchronize_is_accepted(self, validator, seeded):
        body = encode(github_pull_request_payload(action="synchronize"))
        result = validator.validate(body, GITHUB_HEADERS, platform="github")
        assert result.accepted
        assert result.repository.id == seeded["github_repo"]

    @pytest.mark.parametrize(
        "action, state", [("merge", "merged"), ("close", "closed"), ("reopen", "opened")]
    )
    def test_non_trigger_actions_are_ignored(self, validator, seeded, action, state):
        body = encode(gitlab_merge_request_payload(action=action, state=state))
        result = validator.validate(body, GITLAB_HEADERS)
        assert result.outcome == ValidationOutcome.IGNORED
        assert result.status_code == 200

    def test_other_event_kinds_are_ignored(self, validator, seeded):
        headers = {"X-GitHub-Event": "push"}
        result = validator.validate(encode(github_push_payload()), headers)
        assert result.outcome == ValidationOutcome.IGNORED

    def test_unknown_repository_is_ignored(self, validator, seeded):
        body = encode(gitlab_merge_request_payload(project_id=999))
        result = validator.validate(body, GITLAB_HEADERS)
        assert result.outcome == ValidationOutcome.IGNORED
        assert "999" in result.reason

    def test_repository_without_provider_is_ignored(self, validator, database, seeded):
        with database.session() as session:
            session.get(LLMProvider, seeded["provider"]).is_active = False

        result = validator.validate(encode(gitlab_merge_request_payload()), GITLAB_HEADERS)

        assert result.outcome == ValidationOutcome.IGNORED
        assert "No LLM provider" in result.reason

    def test_invalid_json_is_rejected(self, validator, seeded):
        result = validator.validate(b"{not json", GITLAB_HEADERS)
        assert result.outcome == ValidationOutcome.REJECTED
        assert result.status_code == 400

    def test_non_object_json_is_rejected(self, validator, seeded):
        result = validator.validate(b"[1, 2]", GITLAB_HEADERS)
        assert result.status_code == 400

    def test_malformed_change_is_rejected(self, validator, seeded):
        payload = gitlab_merge_request_payload()
        payload["object_attributes"]["iid"] = "not-a-number"
        result = validator.validate(encode(payload), GITLAB_HEADERS)
        assert result.outcome == ValidationOutcome.REJECTED
        assert result.status_code == 400

    def test_unknown_platform_is_rejected(self, validator, seeded):
        result = validator.validate(b"{}", {"content-type": "application/json"})
        assert result.status_code == 400
        result = validator.validate(b"{}", {}, platform="bitbucket")
        assert result.status_code == 400


class TestEventValidatorSecrets:
    """Test the secret precedence and unsigned policy."""

    def _set_repo_secret(self, database, repo_id, secret):
        with database.session() as session:
            session.get(Repository, repo_id).webhook_secret = secret

    def test_repository_secret_must_match(self, validator, database, seeded):
        self._set_repo_secret(database, seeded["gitlab_repo"], "repo-secret")
        body = encode(gitlab_merge_request_payload())

        rejected = validator.validate(body, {**GITLAB_HEADERS, "X-Gitlab-Token": "wrong"})
        accepted = validator.validate(body, {**GITLAB_HEADERS, "X-Gitlab-Token": "repo-secret"})

        assert rejected.status_code == 401
        assert accepted.accepted

    def test_host_secret_used_when_repository_has_none(self, validator, database, seeded):
        with database.session() as session:
            session.get(GitPlatformConfig, seeded["github_host"]).webhook_secret = "host-secret"
        body = encode(github_pull_request_payload())

        good = validator.validate(
            body, {**GITHUB_HEADERS, "X-Hub-Signature-256": _github_signature(body, "host-secret")}
        )
        bad = validator.validate(
            body, {**GITHUB_HEADERS, "X-Hub-Signature-256": _github_signature(body, "other")}
        )

        assert good.accepted
        assert bad.status_code == 401

    def test_global_secret_checked_first(self, catalog, test_config, seeded):
        """GIVEN a global GitLab secret WHEN the token is wrong THEN 401 even for unknown repos."""
        test_config.GITLAB_WEBHOOK_SECRET = "global"
        validator = EventValidator(catalog, test_config)
        body = encode(gitlab_merge_request_payload(project_id=999))

        result = validator.validate(body, {**GITLAB_HEADERS, "X-Gitlab-Token": "wrong"})

        assert result.status_code == 401

    def test_unsigned_rejected_when_not_allowed(self, catalog, test_config, seeded):
        test_config.ALLOW_UNSIGNED_WEBHOOKS = False
        validator = EventValidator(catalog, test_config)

        result = validator.validate(encode(gitlab_merge_request_payload()), GITLAB_HEADERS)

        assert result.outcome == ValidationOutcome.REJECTED
        assert result.status_code == 401

    @pytest.mark.parametrize(
        "action, state", [("merge", "merged"), ("close", "closed"), ("reopen", "opened")]
    )
    def test_non_trigger_actions_ignored_before_secret_check(self, validator, database, seeded, action, state):
        """
        GIVEN a repository secret is configured
        WHEN a merge/close/reopen delivery carries a wrong token
        THEN it is ignored, not rejected
        """
        # Arrange
        self._set_repo_secret(database, seeded["gitlab_repo"], "repo-secret")
        body = encode(gitlab_merge_request_payload(action=action, state=state))

        # Act
        result = validator.validate(body, {**GITLAB_HEADERS, "X-Gitlab-Token": "wrong"})

        # Assert
        assert result.outcome == ValidationOutcome.IGNORED
        assert result.status_code == 200

    def test_non_trigger_action_ignored_with_global_secret(self, catalog, test_config, seeded):
        test_config.GITLAB_WEBHOOK_SECRET = "global"
        validator = EventValidator(catalog, test_config)
        body = encode(gitlab_merge_request_payload(action="close", state="closed"))

        result = validator.validate(body, GITLAB_HEADERS)

        assert result.outcome == ValidationOutcome.IGNORED
