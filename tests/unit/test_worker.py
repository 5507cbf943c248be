"""
Unit Tests for Celery Worker

Tests how process_code_review maps ReviewHandler outcomes onto Celery
retries, and the LLM client invalidation control command.
"""

from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry
from prometheus_client import REGISTRY

from models.platform import ReviewStatus
from services.review_handler import ReviewRunResult
from utils.errors import PermanentJobError, RetryableJobError


@pytest.fixture
def handler():
    """Mock ReviewHandler installed as the worker's process-wide handler."""
    from worker import set_review_handler

    mock = MagicMock()
    set_review_handler(mock)
    yield mock
    set_review_handler(None)


@pytest.fixture
def task_request():
    """Push a Celery request context so the task sees an id and retry count."""
    from worker import process_code_review

    def push(retries: int = 0):
        process_code_review.push_request(id="task-abc", retries=retries)

    yield push
    process_code_review.pop_request()


class TestProcessCodeReviewTask:
    """Test process_code_review Celery task."""

    def test_task_is_registered(self):
        """
        GIVEN the worker module
        WHEN importing process_code_review
        THEN it is a bound Celery task under the queue's task name
        """
        # Arrange & Act
        from celery_app import app
        from services.queue import REVIEW_TASK_NAME
        from worker import process_code_review

        # Assert
        assert process_code_review.name == REVIEW_TASK_NAME
        assert REVIEW_TASK_NAME in app.tasks
        assert process_code_review.max_retries == 3

    def test_success_returns_run_outcome(self, handler, task_request):
        from worker import process_code_review

        handler.process.return_value = ReviewRunResult(
            review_id=7, status=ReviewStatus.COMPLETED, score=88, suggestions=2, comment_posted=True
        )
        task_request()

        result = process_code_review.run(7)

        handler.process.assert_called_once_with(7)
        assert result["task_id"] == "task-abc"
        assert result["status"] == "completed"
        assert result["score"] == 88

    def test_permanent_failure_is_not_retried(self, handler, task_request):
        """
        GIVEN the handler reports a permanent failure
        WHEN the task runs
        THEN it returns a failed outcome without scheduling a retry
        """
        from worker import process_code_review

        handler.process.side_effect = PermanentJobError("No LLM provider configured", 7)
        task_request()

        with patch.object(process_code_review, "retry") as mock_retry:
            result = process_code_review.run(7)

        mock_retry.assert_not_called()
        assert result == {
            "task_id": "task-abc",
            "review_id": 7,
            "status": "failed",
            "error": "No LLM provider configured",
        }

    def test_retryable_failure_schedules_retry_with_backoff(self, handler, task_request):
        from worker import process_code_review, retry_countdown

        error = RetryableJobError("Failed to get MR diff: 502", 7)
        handler.process.side_effect = error
        task_request(retries=1)
        labels = {"task_name": process_code_review.name, "reason": "retryable"}
        before = REGISTRY.get_sample_value("mergeguard_celery_task_retry_total", labels) or 0

        with patch.object(process_code_review, "retry", return_value=Retry()) as mock_retry:
            with pytest.raises(Retry):
                process_code_review.run(7)

        mock_retry.assert_called_once_with(exc=error, countdown=retry_countdown(1))
        assert REGISTRY.get_sample_value("mergeguard_celery_task_retry_total", labels) == before + 1

    def test_retries_exhausted_reraises(self, handler, task_request):
        from worker import process_code_review

        handler.process.side_effect = RetryableJobError("LLM review failed: timeout", 7)
        task_request(retries=3)

        with patch.object(process_code_review, "retry") as mock_retry:
            with pytest.raises(RetryableJobError):
                process_code_review.run(7)

        mock_retry.assert_not_called()

    def test_unexpected_error_propagates(self, handler, task_request):
        from worker import process_code_review

        handler.process.side_effect = KeyError("boom")
        task_request()

        with pytest.raises(KeyError):
            process_code_review.run(7)


class TestRetryCountdown:
    def test_doubles_per_attempt(self):
        from worker import config, retry_countdown

        assert retry_countdown(0) == config.QUEUE_RETRY_DELAY
        assert retry_countdown(1) == min(config.QUEUE_RETRY_DELAY * 2, config.QUEUE_RETRY_BACKOFF_MAX)

    def test_capped(self):
        from worker import config, retry_countdown

        assert retry_countdown(20) == config.QUEUE_RETRY_BACKOFF_MAX


class TestInvalidateControlCommand:
    def test_command_registered(self):
        from celery.worker.control import Panel

        from services.queue import INVALIDATE_COMMAND

        import worker  # noqa: F401

        assert INVALIDATE_COMMAND in Panel.data

    @patch("worker.get_client_pool")
    def test_drops_pooled_client(self, mock_get_pool):
        from worker import invalidate_llm_provider

        mock_get_pool.return_value.invalidate.return_value = True

        reply = invalidate_llm_provider(MagicMock(), 5)

        mock_get_pool.return_value.invalidate.assert_called_once_with(5)
        assert reply == {"ok": "provider 5 invalidated"}
