"""
MergeGuard - Pipeline error taxonomy

Ignored payloads are not errors and never raise. Everything else maps to
one of the classes below:

- WebhookError: inbound validation failure, answered with a 4xx/5xx status
- QueueError: the task queue transport refused a job
- RetryableJobError: transient failure inside a job, redelivered by the queue
- PermanentJobError: the job cannot succeed, the review is failed without retry
"""


class WebhookError(Exception):
    """Raised when an inbound webhook is rejected."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class QueueError(Exception):
    """Raised when a job cannot be handed to the task queue."""


class JobError(Exception):
    """Base class for failures raised while processing a review job."""

    def __init__(self, message: str, review_id: int | None = None) -> None:
        super().__init__(message)
        self.review_id = review_id


class RetryableJobError(JobError):
    """Transient failure; the queue should redeliver the job."""


class PermanentJobError(JobError):
    """Terminal failure; retrying cannot help."""
