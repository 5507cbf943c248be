"""
MergeGuard - Graceful Degradation Module

Side channels of the review pipeline (usage accounting, webhook-event status,
the comment-posted flag) must never fail the job that triggered them. The
decorators here log the failure, record it, and return a fallback value.
"""

import time
from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from loguru import logger

from utils.metrics import side_channel_failures_total


class ServiceName(str, Enum):
    """External dependencies whose health is tracked."""

    DATABASE = "database"
    QUEUE = "queue"
    LLM = "llm"


class HealthStatus:
    """
    Tracks health status of external services.

    Updated by the fallback decorators and read by the /health endpoint.
    """

    def __init__(self):
        self._healthy: dict[str, bool] = {service.value: True for service in ServiceName}
        self.last_check: float = time.time()

    def set_health(self, service: ServiceName, healthy: bool) -> None:
        """Update the health flag of one service."""
        self._healthy[service.value] = healthy
        self.last_check = time.time()

    def is_healthy(self, service: ServiceName) -> bool:
        return self._healthy[service.value]

    def snapshot(self) -> dict[str, str]:
        """Return a printable view of every tracked service."""
        return {
            name: "healthy" if healthy else "degraded"
            for name, healthy in self._healthy.items()
        }


# Global health status instance
_health_status = HealthStatus()


def get_health_status() -> HealthStatus:
    """Get global health status instance."""
    return _health_status


def best_effort(
    channel: str,
    fallback_return: Any = None,
    log_level: str = "warning",
    service: ServiceName | None = ServiceName.DATABASE,
) -> Callable:
    """
    Decorator for side-channel writes whose failure must not surface.

    Any exception raised by the wrapped function is logged, counted and
    replaced by ``fallback_return``.

    Args:
        channel: Name of the side channel, used in logs and metrics
        fallback_return: Value to return if the call fails
        log_level: Log level for failure messages (default: warning)
        service: Service whose health flag follows the outcome

    Example:
        @best_effort("usage_log")
        def record_usage(session, entry) -> None:
            session.add(entry)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
                if service is not None:
                    _health_status.set_health(service, True)
                return result

            except Exception as e:
                if service is not None:
                    _health_status.set_health(service, False)
                side_channel_failures_total.labels(channel=channel).inc()

                log_func = getattr(logger, log_level, logger.warning)
                log_func(f"Best-effort {channel} failed in {func.__name__}: {e}")

                return fallback_return

        return wrapper

    return decorator
