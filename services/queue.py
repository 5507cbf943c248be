"""
MergeGuard - Task queue facade.

The queue message carries only the review id; workers re-read the current
review state when they pick the job up.
"""

from celery import Celery
from loguru import logger

from utils.degradation import ServiceName, get_health_status
from utils.errors import QueueError
from utils.metrics import queue_enqueue_total

REVIEW_TASK_NAME = "worker.process_code_review"
INVALIDATE_COMMAND = "invalidate_llm_provider"
LANES = ("critical", "default", "low")


class TaskQueue:
    """Enqueues review jobs on a Celery broker."""

    def __init__(self, app: Celery, lane: str = "default") -> None:
        """
        Initialize task queue.

        Args:
            app: Configured Celery application
            lane: Named queue jobs are routed to (critical, default or low)
        """
        if lane not in LANES:
            raise ValueError(f"Unknown queue lane: {lane}")
        self.app = app
        self.lane = lane

    def enqueue(self, review_id: int, lane: str | None = None) -> str:
        """
        Hand a review job to the broker.

        Args:
            review_id: Review to process
            lane: Optional lane override

        Returns:
            Celery task id

        Raises:
            QueueError: If the broker cannot be reached or refuses the message
        """
        lane = lane or self.lane
        try:
            result = self.app.send_task(
                REVIEW_TASK_NAME,
                args=[review_id],
                queue=lane,
                retry=True,
                retry_policy={"max_retries": 2, "interval_start": 0, "interval_step": 0.5},
            )
        except Exception as e:
            queue_enqueue_total.labels(lane=lane, status="failure").inc()
            get_health_status().set_health(ServiceName.QUEUE, False)
            logger.bind(review_id=review_id).error(f"Failed to enqueue review job: {e}")
            raise QueueError(str(e)) from e

        queue_enqueue_total.labels(lane=lane, status="success").inc()
        get_health_status().set_health(ServiceName.QUEUE, True)
        logger.bind(review_id=review_id, task_id=result.id).info(f"Enqueued review job on '{lane}'")
        return result.id

    def broadcast_provider_invalidation(self, provider_id: int) -> None:
        """
        Ask every worker to drop its pooled client for a provider.

        Called by the configuration layer after credentials change or a
        provider is deleted.
        """
        self.app.control.broadcast(INVALIDATE_COMMAND, arguments={"provider_id": provider_id})
        logger.bind(provider_id=provider_id).info("Broadcast LLM client invalidation")
