"""
Test fixtures package for MergeGuard tests.

Shared webhook payloads and model outputs used across unit, contract
and integration tests.
"""

from .llm_responses import (
    EMPTY_RESPONSE,
    FENCED_JSON_RESPONSE,
    FREE_TEXT_RESPONSE,
    SYNONYM_JSON_RESPONSE,
)
from .webhook_payloads import (
    GITHUB_HEADERS,
    GITHUB_REPOSITORY_ID,
    GITLAB_HEADERS,
    GITLAB_PROJECT_ID,
    encode,
    github_pull_request_payload,
    github_push_payload,
    gitlab_merge_request_payload,
)

__all__ = [
    "EMPTY_RESPONSE",
    "FENCED_JSON_RESPONSE",
    "FREE_TEXT_RESPONSE",
    "SYNONYM_JSON_RESPONSE",
    "GITHUB_HEADERS",
    "GITHUB_REPOSITORY_ID",
    "GITLAB_HEADERS",
    "GITLAB_PROJECT_ID",
    "encode",
    "github_pull_request_payload",
    "github_push_payload",
    "gitlab_merge_request_payload",
]
