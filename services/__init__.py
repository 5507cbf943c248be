"""
MergeGuard - Services Layer

Business logic between the HTTP/queue edges and the repositories:
- EventValidator: webhook authenticity and trigger checks
- WebhookIngestionService: idempotent job creation and enqueueing
- TaskQueue: Celery producer facade
- ReviewHandler: the review job state machine
"""

from services.event_validator import EventValidator, ValidationResult, detect_platform
from services.ingestion import IngestionResult, WebhookIngestionService
from services.queue import INVALIDATE_COMMAND, REVIEW_TASK_NAME, TaskQueue
from services.review_handler import ReviewHandler, ReviewRunResult

__all__ = [
    "EventValidator",
    "ValidationResult",
    "detect_platform",
    "IngestionResult",
    "WebhookIngestionService",
    "TaskQueue",
    "REVIEW_TASK_NAME",
    "INVALIDATE_COMMAND",
    "ReviewHandler",
    "ReviewRunResult",
]
