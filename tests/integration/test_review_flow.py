"""
Integration Tests for Review Flow

Tests the end-to-end flow: webhook -> job store -> queue -> worker task ->
LLM -> parser -> persisted review -> platform comment. Only the network
edges (broker, source-control API, LLM API) are replaced.
"""

import pytest
import requests

from llm.base import ChatResponse, TokenUsage
from models.platform import EventStatus
from tests.fixtures import (
    GITHUB_HEADERS,
    GITLAB_HEADERS,
    SYNONYM_JSON_RESPONSE,
    encode,
    github_pull_request_payload,
    gitlab_merge_request_payload,
)
from utils.errors import RetryableJobError

pytestmark = pytest.mark.integration


@pytest.fixture
def worker_task(review_handler):
    """The Celery review task wired to the test handler."""
    from worker import process_code_review, set_review_handler

    set_review_handler(review_handler)
    yield process_code_review
    set_review_handler(None)


def _post(test_client, platform, payload, headers):
    response = test_client.post(f"/v1/webhook/{platform}", content=encode(payload), headers=headers)
    assert response.status_code == 200
    return response.json()


class TestReviewFlow:
    """Test a change travelling through the whole pipeline."""

    def test_happy_path(self, test_client, seeded, mock_queue, worker_task, mock_adapter, review_repository, event_repository):
        """
        GIVEN a configured GitLab repository
        WHEN a merge request webhook arrives and the queued job runs
        THEN the review is completed, its suggestions stored and a comment posted
        """
        # Arrange
        accepted = _post(test_client, "gitlab", gitlab_merge_request_payload(), GITLAB_HEADERS)
        (queued_review_id,) = mock_queue.enqueue.call_args.args

        # Act
        outcome = worker_task.apply(args=[queued_review_id]).get()

        # Assert
        assert queued_review_id == accepted["review_id"]
        assert outcome["status"] == "completed"
        assert outcome["score"] == 72

        review = test_client.get(f"/v1/reviews/{queued_review_id}").json()
        assert review["status"] == "completed"
        assert review["comment_posted"] is True
        assert [s["severity"] for s in review["suggestions"]] == ["high", "low"]
        assert review["suggestions"][0]["file_path"] == "payments/retry.py"

        mock_adapter.post_comment.assert_called_once()
        job = review_repository.load_job(queued_review_id)
        assert event_repository.get_status(job.webhook_event_id) == EventStatus.COMPLETED

    def test_redelivery_after_completion(self, test_client, seeded, mock_queue, worker_task, mock_llm_client, mock_adapter):
        """
        GIVEN a review that has completed
        WHEN the same webhook is delivered again and a stray job runs
        THEN nothing is re-queued and the model is not called again
        """
        payload = gitlab_merge_request_payload()
        accepted = _post(test_client, "gitlab", payload, GITLAB_HEADERS)
        worker_task.apply(args=[accepted["review_id"]]).get()

        again = _post(test_client, "gitlab", payload, GITLAB_HEADERS)
        outcome = worker_task.apply(args=[accepted["review_id"]]).get()

        assert again["review_id"] == accepted["review_id"]
        assert again["review_status"] == "completed"
        assert again["enqueued"] is False
        assert mock_queue.enqueue.call_count == 1
        assert outcome["skipped"] is True
        assert mock_llm_client.chat_completion.call_count == 1
        assert mock_adapter.post_comment.call_count == 1

    def test_diff_not_found(self, test_client, seeded, review_handler, mock_adapter, mock_llm_client, review_repository):
        """
        GIVEN the platform answers the diff request with 404
        WHEN the job runs
        THEN the job asks for a retry and the review is failed with the diff error
        """
        accepted = _post(test_client, "gitlab", gitlab_merge_request_payload(), GITLAB_HEADERS)
        mock_adapter.get_diff.side_effect = requests.HTTPError("404 Client Error: Not Found")

        with pytest.raises(RetryableJobError):
            review_handler.process(accepted["review_id"])

        review = review_repository.get_review(accepted["review_id"])
        assert review["status"] == "failed"
        assert "diff" in review["error_message"]
        assert review_repository.count_suggestions(accepted["review_id"]) == 0
        mock_llm_client.chat_completion.assert_not_called()

    def test_synonym_vocabulary_is_normalized(self, test_client, seeded, worker_task, mock_llm_client, review_repository):
        """
        GIVEN a model answering with blocker/vuln vocabulary
        WHEN a GitHub pull request is reviewed
        THEN the stored suggestion is critical/security
        """
        mock_llm_client.chat_completion.return_value = ChatResponse(
            content=SYNONYM_JSON_RESPONSE,
            model="gpt-4o-mini",
            usage=TokenUsage(prompt_tokens=500, completion_tokens=100, total_tokens=600),
            duration_ms=900,
        )
        accepted = _post(test_client, "github", github_pull_request_payload(), GITHUB_HEADERS)

        outcome = worker_task.apply(args=[accepted["review_id"]]).get()

        assert outcome["score"] == 40
        suggestion = review_repository.get_review(accepted["review_id"])["suggestions"][0]
        assert suggestion["severity"] == "critical"
        assert suggestion["category"] == "security"
        assert suggestion["file_path"] == "db/query.py"
        assert suggestion["suggestion"] == "Use bound parameters."
