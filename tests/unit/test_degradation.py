"""
Unit tests for graceful degradation of best-effort side channels.
"""

from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY

from utils.degradation import HealthStatus, ServiceName, best_effort, get_health_status

FAILURES = "mergeguard_side_channel_failures_total"


@pytest.mark.unit
class TestBestEffort:
    def test_returns_result_on_success(self):
        @best_effort("unit_channel")
        def write():
            return 42

        assert write() == 42
        assert get_health_status().is_healthy(ServiceName.DATABASE) is True

    def test_failure_returns_fallback_and_counts(self):
        """
        GIVEN a side-channel write that raises
        WHEN it is called
        THEN the fallback is returned, the failure counted and the service marked degraded
        """
        @best_effort("unit_channel", fallback_return=None)
        def write():
            raise RuntimeError("database is locked")

        before = REGISTRY.get_sample_value(FAILURES, {"channel": "unit_channel"}) or 0

        assert write() is None
        assert REGISTRY.get_sample_value(FAILURES, {"channel": "unit_channel"}) == before + 1
        assert get_health_status().is_healthy(ServiceName.DATABASE) is False

    def test_recovery_marks_service_healthy(self):
        calls = {"n": 0}

        @best_effort("unit_channel")
        def write():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")

        write()
        write()

        assert get_health_status().is_healthy(ServiceName.DATABASE) is True

    def test_untracked_service(self):
        @best_effort("unit_channel", fallback_return=False, service=None)
        def write():
            raise RuntimeError("nope")

        assert write() is False
        assert get_health_status().is_healthy(ServiceName.DATABASE) is True

    def test_logs_at_requested_level(self):
        @best_effort("unit_channel", log_level="error")
        def write():
            raise RuntimeError("nope")

        with patch("utils.degradation.logger") as mock_logger:
            write()

        mock_logger.error.assert_called_once()
        assert "unit_channel" in mock_logger.error.call_args.args[0]

    def test_preserves_function_name(self):
        @best_effort("unit_channel")
        def record_usage():
            pass

        assert record_usage.__name__ == "record_usage"


@pytest.mark.unit
class TestHealthStatus:
    def test_snapshot(self):
        status = HealthStatus()
        status.set_health(ServiceName.QUEUE, False)

        assert status.snapshot() == {"database": "healthy", "queue": "degraded", "llm": "healthy"}
