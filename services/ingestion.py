"""
MergeGuard - Webhook ingestion service.

Validator -> idempotent review upsert -> delivery log -> enqueue.
"""

from collections.abc import Mapping

from loguru import logger
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from models.platform import EventStatus, PlatformType, ReviewStatus, ValidationOutcome
from repositories.reviews import ReviewRepository
from repositories.webhook_events import WebhookEventRepository
from services.event_validator import EventValidator
from services.queue import TaskQueue
from utils.errors import QueueError, WebhookError
from utils.metrics import webhook_received_total


class IngestionResult(BaseModel):
    """Response body of the webhook endpoint."""

    status: ValidationOutcome
    message: str
    review_id: int | None = None
    review_status: ReviewStatus | None = None
    task_id: str | None = None
    enqueued: bool = False


class WebhookIngestionService:
    """
    Service for turning accepted webhooks into queued review jobs.

    A job is enqueued when the delivery created the review, or when it finds
    the review failed (moved back to pending first). Redeliveries for a
    pending, processing or completed review refresh its descriptive fields
    and report its current status without queuing a second job.
    """

    def __init__(
        self,
        validator: EventValidator,
        reviews: ReviewRepository,
        events: WebhookEventRepository,
        queue: TaskQueue,
    ) -> None:
        """
        Initialize ingestion service.

        Args:
            validator: Webhook validator
            reviews: Review job store
            events: Webhook delivery log
            queue: Task queue for review jobs
        """
        self.validator = validator
        self.reviews = reviews
        self.events = events
        self.queue = queue

    def ingest(
        self,
        body: bytes,
        headers: Mapping[str, str],
        platform: str | PlatformType | None = None,
    ) -> IngestionResult:
        """
        Process one webhook delivery.

        Args:
            body: Raw request body
            headers: Request headers
            platform: Platform from the URL, or None to detect from headers

        Returns:
            IngestionResult for ignored and accepted deliveries

        Raises:
            WebhookError: 400/401 for rejected deliveries, 500 when the job
                          could not be stored or enqueued
        """
        result = self.validator.validate(body, headers, platform)
        webhook_received_total.labels(
            platform=result.platform.value if result.platform else "unknown"
        ).inc()

        if result.outcome == ValidationOutcome.REJECTED:
            raise WebhookError(result.status_code, result.reason)
        if result.outcome == ValidationOutcome.IGNORED:
            return IngestionResult(status=ValidationOutcome.IGNORED, message=result.reason)

        change = result.change
        repository = result.repository
        log = logger.bind(platform=change.platform.value)

        try:
            upsert = self.reviews.upsert_review(
                repository.id, change, repository.llm_provider.id
            )
        except SQLAlchemyError as e:
            log.error(f"Failed to store review job: {e}")
            raise WebhookError(500, "Failed to store review job") from e

        log = log.bind(review_id=upsert.review_id)
        event_id = self.events.record(
            repository.id,
            change,
            raw_payload=body.decode("utf-8", errors="replace"),
            event_type="merge_request" if change.platform == PlatformType.GITLAB else "pull_request",
        )

        requeued = (
            not upsert.created
            and upsert.status == ReviewStatus.FAILED
            and self.reviews.requeue_failed(upsert.review_id)
        )
        if not upsert.created and not requeued:
            if event_id is not None and event_id != upsert.webhook_event_id:
                self.events.update_status(event_id, EventStatus.IGNORED)
            log.info(f"Redelivery for existing review (status={upsert.status.value}), not re-enqueued")
            return IngestionResult(
                status=ValidationOutcome.ACCEPTED,
                message="Review already exists",
                review_id=upsert.review_id,
                review_status=upsert.status,
            )

        if requeued:
            log.info("Re-queuing previously failed review")
            self.events.update_status(event_id, EventStatus.PENDING)
        if event_id is not None:
            self.reviews.attach_webhook_event(upsert.review_id, event_id)

        try:
            task_id = self.queue.enqueue(upsert.review_id)
        except QueueError as e:
            message = f"Failed to enqueue task: {e}"
            self.reviews.mark_failed(upsert.review_id, message)
            self.events.update_status(event_id, EventStatus.FAILED, message)
            raise WebhookError(500, message) from e

        self.reviews.set_task_id(upsert.review_id, task_id)
        log.bind(task_id=task_id).info(
            f"Review queued for {repository.full_path or repository.name} change {change.change_number}"
        )
        return IngestionResult(
            status=ValidationOutcome.ACCEPTED,
            message="Review queued",
            review_id=upsert.review_id,
            review_status=ReviewStatus.PENDING,
            task_id=task_id,
            enqueued=True,
        )
