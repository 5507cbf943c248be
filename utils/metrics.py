"""
Prometheus metrics for MergeGuard observability.

Defines all metrics emitted by the webhook surface, the task queue, the
review worker and the LLM clients.
"""

import time
from functools import wraps

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Webhook Metrics
# ============================================================================

webhook_received_total = Counter(
    "mergeguard_webhook_received_total",
    "Total webhooks received",
    labelnames=("platform",),
)

webhook_outcome_total = Counter(
    "mergeguard_webhook_outcome_total",
    "Webhook validation outcomes",
    labelnames=("platform", "outcome"),  # outcome: ignored/rejected/accepted
)

webhook_signature_verified_total = Counter(
    "mergeguard_webhook_signature_verified_total",
    "Total webhook secret verifications",
    labelnames=("platform", "result"),  # result: success/failure/unsigned
)

# ============================================================================
# Review Performance Metrics
# ============================================================================

review_duration_seconds = Histogram(
    "mergeguard_review_duration_seconds",
    "Time taken to process one review job",
    buckets=(0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
    labelnames=("platform", "status"),
)

reviews_in_progress = Gauge(
    "mergeguard_reviews_in_progress",
    "Review jobs currently being processed by this worker",
)

review_parser_strategy_total = Counter(
    "mergeguard_review_parser_strategy_total",
    "Parser strategy that produced each normalized review",
    labelnames=("strategy",),
)

# ============================================================================
# LLM Metrics
# ============================================================================

llm_tokens_total = Counter(
    "mergeguard_llm_tokens_total",
    "Total LLM tokens consumed",
    labelnames=("provider", "model_name", "token_type"),  # token_type: prompt/completion
)

llm_requests_total = Counter(
    "mergeguard_llm_requests_total",
    "Total LLM API requests made",
    labelnames=("provider", "model_name", "status"),
)

llm_request_duration_seconds = Histogram(
    "mergeguard_llm_request_duration_seconds",
    "Time taken for LLM API requests",
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, float("inf")),
    labelnames=("provider", "model_name"),
)

llm_client_pool_size = Gauge(
    "mergeguard_llm_client_pool_size",
    "Number of pooled LLM clients in this process",
)

# ============================================================================
# Task Queue Metrics
# ============================================================================

queue_enqueue_total = Counter(
    "mergeguard_queue_enqueue_total",
    "Jobs handed to the task queue",
    labelnames=("lane", "status"),  # status: success/failure
)

celery_task_retry_total = Counter(
    "mergeguard_celery_task_retry_total",
    "Total Celery task retries",
    labelnames=("task_name", "reason"),
)

celery_task_failure_total = Counter(
    "mergeguard_celery_task_failure_total",
    "Total permanently failed Celery tasks",
    labelnames=("task_name", "reason"),
)

# ============================================================================
# Error Metrics
# ============================================================================

side_channel_failures_total = Counter(
    "mergeguard_side_channel_failures_total",
    "Best-effort side-channel writes that failed",
    labelnames=("channel",),
)

# ============================================================================
# Helper Functions
# ============================================================================


def track_llm_request(func):
    """
    Decorator for ``LLMClient.chat_completion`` implementations.

    Records latency, request outcome and token usage labelled with the
    client's provider type and model.
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        labels = {"provider": self.provider_type, "model_name": self.model}
        start = time.perf_counter()
        try:
            result = func(self, *args, **kwargs)
        except Exception:
            llm_requests_total.labels(status="failure", **labels).inc()
            raise
        finally:
            llm_request_duration_seconds.labels(**labels).observe(
                time.perf_counter() - start
            )
        llm_requests_total.labels(status="success", **labels).inc()
        usage = getattr(result, "usage", None)
        if usage is not None:
            llm_tokens_total.labels(token_type="prompt", **labels).inc(usage.prompt_tokens)
            llm_tokens_total.labels(token_type="completion", **labels).inc(usage.completion_tokens)
        return result

    return wrapper
