"""
MergeGuard - Celery Application Configuration

Configures Celery for async review processing with a Redis broker, three
priority lanes and at-least-once delivery.
"""

from datetime import timedelta

from celery import Celery
from celery.result import AsyncResult
from kombu import Queue

from services.queue import LANES, REVIEW_TASK_NAME
from utils.config import Config
from utils.logger import setup_logging

setup_logging()

config = Config()

# -----------------------------------------------------------------------------
# Celery Application
# -----------------------------------------------------------------------------
app = Celery("mergeguard", include=["worker"])

app.conf.update(
    # -------------------------------------------------------------------------
    # Broker (Redis)
    # -------------------------------------------------------------------------
    broker_url=config.CELERY_BROKER_URL,
    result_backend=config.CELERY_RESULT_BACKEND,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=5,

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_time_limit=config.CELERY_TASK_TIME_LIMIT,
    task_soft_time_limit=int(config.CELERY_TASK_TIME_LIMIT * 0.8),
    # Ack after the handler returns; a crashed worker's job is redelivered
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------
    result_expires=timedelta(hours=24),
    result_extended=True,

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------
    # Threads share one LLM client pool per process
    worker_pool="threads",
    worker_concurrency=config.CELERY_WORKER_CONCURRENCY,
    worker_prefetch_multiplier=1,
    worker_send_task_events=True,
    # Logging is owned by loguru (utils/logger.py)
    worker_hijack_root_logger=False,

    # -------------------------------------------------------------------------
    # Lanes
    # -------------------------------------------------------------------------
    task_queues=tuple(Queue(lane, routing_key=lane) for lane in LANES),
    task_default_queue=config.QUEUE_DEFAULT_LANE,
    task_default_routing_key=config.QUEUE_DEFAULT_LANE,
    task_routes={REVIEW_TASK_NAME: {"queue": config.QUEUE_DEFAULT_LANE}},
)


@app.on_after_configure.connect
def log_configuration(sender, **kwargs):
    from loguru import logger

    logger.info(
        f"MergeGuard Celery app configured: concurrency={config.CELERY_WORKER_CONCURRENCY}, "
        f"time_limit={config.CELERY_TASK_TIME_LIMIT}s, lanes={', '.join(LANES)}"
    )


# -----------------------------------------------------------------------------
# Utility Functions
# -----------------------------------------------------------------------------
def get_task_info(task_id: str) -> dict:
    """
    Get information about a Celery task by ID.

    Args:
        task_id: Celery task ID

    Returns:
        dict with task status, result, and traceback
    """
    result = AsyncResult(task_id, app=app)

    return {
        "task_id": task_id,
        "status": result.state,
        "result": result.result if result.ready() and not result.failed() else None,
        "traceback": result.traceback if result.failed() else None,
    }


__all__ = [
    "app",
    "get_task_info",
]
