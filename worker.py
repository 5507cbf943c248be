"""
MergeGuard - Celery Worker Entry Point

Defines the review task and the worker control command that drops pooled
LLM clients. All review logic lives in ReviewHandler; this module maps its
outcome onto Celery retries.

Run with:
    celery -A celery_app worker -Q critical,default,low
"""

import threading

from celery.worker.control import control_command
from loguru import logger

from celery_app import app
from llm.client_pool import get_client_pool
from repositories import (
    CatalogRepository,
    ReviewRepository,
    UsageRepository,
    WebhookEventRepository,
    get_database,
)
from services.queue import REVIEW_TASK_NAME
from services.review_handler import ReviewHandler
from utils.config import Config
from utils.errors import PermanentJobError, RetryableJobError
from utils.metrics import celery_task_failure_total, celery_task_retry_total

config = Config()

_handler: ReviewHandler | None = None
_handler_lock = threading.Lock()


def get_review_handler() -> ReviewHandler:
    """Build the process-wide review handler on first use."""
    global _handler
    with _handler_lock:
        if _handler is None:
            database = get_database(config.DATABASE_URL)
            _handler = ReviewHandler(
                reviews=ReviewRepository(database),
                catalog=CatalogRepository(database),
                events=WebhookEventRepository(database),
                usage=UsageRepository(database),
                client_pool=get_client_pool(),
                config=config,
            )
        return _handler


def set_review_handler(handler: ReviewHandler | None) -> None:
    """Replace the process-wide handler (tests, reconfiguration)."""
    global _handler
    with _handler_lock:
        _handler = handler


def retry_countdown(retries: int) -> int:
    """Exponential backoff: base delay doubled per attempt, capped."""
    return min(config.QUEUE_RETRY_DELAY * (2 ** retries), config.QUEUE_RETRY_BACKOFF_MAX)


# =============================================================================
# Celery Tasks
# =============================================================================

@app.task(name=REVIEW_TASK_NAME, bind=True, max_retries=config.QUEUE_MAX_RETRIES)
def process_code_review(self, review_id: int) -> dict:
    """
    Process one review job.

    Args:
        self: Celery task bound instance
        review_id: Review to process; the current state is re-read from the
                   store, so redelivered messages are safe

    Returns:
        dict with the run outcome

    Raises:
        celery.exceptions.Retry: When a transient step failed and retries remain
        RetryableJobError: When retries are exhausted
    """
    log = logger.bind(review_id=review_id, task_id=self.request.id)
    log.info(f"Processing review job (attempt {self.request.retries + 1})")

    try:
        result = get_review_handler().process(review_id)

    except PermanentJobError as e:
        celery_task_failure_total.labels(task_name=self.name, reason="permanent").inc()
        log.error(f"Review job failed permanently: {e}")
        return {
            "task_id": self.request.id,
            "review_id": review_id,
            "status": "failed",
            "error": str(e),
        }

    except RetryableJobError as e:
        reason = type(e.__cause__).__name__ if e.__cause__ else "retryable"
        if self.request.retries >= self.max_retries:
            celery_task_failure_total.labels(task_name=self.name, reason="retries_exhausted").inc()
            log.error(f"Review job failed after {self.request.retries + 1} attempts: {e}")
            raise

        countdown = retry_countdown(self.request.retries)
        celery_task_retry_total.labels(task_name=self.name, reason=reason).inc()
        log.warning(f"Review job failed, retrying in {countdown}s: {e}")
        raise self.retry(exc=e, countdown=countdown)

    except Exception as e:
        celery_task_failure_total.labels(task_name=self.name, reason=type(e).__name__).inc()
        log.exception(f"Unexpected error in review job: {e}")
        raise

    return {"task_id": self.request.id, **result.model_dump(mode="json")}


# =============================================================================
# Control Commands
# =============================================================================

@control_command(
    args=[("provider_id", int)],
    signature="<provider_id>",
)
def invalidate_llm_provider(state, provider_id):
    """Drop this worker's pooled client for an LLM provider."""
    removed = get_client_pool().invalidate(int(provider_id))
    logger.bind(provider_id=provider_id).info(
        f"LLM client {'invalidated' if removed else 'not pooled'}"
    )
    return {"ok": f"provider {provider_id} {'invalidated' if removed else 'not pooled'}"}


__all__ = [
    "process_code_review",
    "invalidate_llm_provider",
    "get_review_handler",
    "set_review_handler",
    "retry_countdown",
]
