"""
Unit tests for performance metrics and their Prometheus export.
"""

from unittest.mock import patch

import pytest

from service_business_rules.app.metrics.performance import PerformanceMetrics
from shared.metrics import MetricsCollector


class TestPerformanceMetrics:
    """Test cases for PerformanceMetrics."""

    @pytest.fixture
    def collector(self):
        return MetricsCollector("business_rules_test")

    @pytest.fixture
    def metrics(self, collector):
        return PerformanceMetrics(collector, slow_threshold_ms=100)

    def test_empty_summary(self):
        summary = PerformanceMetrics().summary()

        assert summary == {
            "cache": {"hit_rate": "0.0%", "hits": 0, "misses": 0},
            "availability": {"checks": 0, "avg_time_ms": "0.00", "slow_operations": 0},
            "pricing": {"calculations": 0, "avg_time_ms": "0.00", "slow_operations": 0},
            "prep_time": {"estimates": 0, "avg_time_ms": "0.00", "slow_operations": 0},
            "loyalty": {"calculations": 0, "avg_time_ms": "0.00", "slow_operations": 0},
        }

    def test_cache_hit_rate(self, metrics):
        for _ in range(3):
            metrics.record_cache_hit("pricing")
        metrics.record_cache_miss("pricing")

        assert metrics.cache_hit_rate() == 0.75
        assert metrics.summary()["cache"] == {"hit_rate": "75.0%", "hits": 3, "misses": 1}

    def test_average_and_slow_operations(self, metrics):
        metrics.record_operation("pricing", 20.0)
        metrics.record_operation("pricing", 40.0)
        metrics.record_operation("pricing", 150.0)

        pricing = metrics.summary()["pricing"]
        assert pricing["calculations"] == 3
        assert pricing["avg_time_ms"] == "70.00"
        assert pricing["slow_operations"] == 1

    def test_threshold_is_exclusive(self, metrics):
        metrics.record_operation("loyalty", 100.0)

        assert metrics.summary()["loyalty"]["slow_operations"] == 0

    def test_timer_records_on_failure(self, metrics):
        """Test a timed block that raises is still counted."""
        with pytest.raises(RuntimeError):
            with metrics.timer("prep_time"):
                raise RuntimeError("boom")

        assert metrics.summary()["prep_time"]["estimates"] == 1

    def test_prometheus_mirroring(self, metrics, collector):
        metrics.record_cache_hit("availability")
        metrics.record_cache_miss("availability")
        metrics.record_operation("availability", 250.0)

        registry = collector.registry
        assert registry.get_sample_value("rules_cache_hits_total", {"category": "availability"}) == 1
        assert registry.get_sample_value("rules_cache_misses_total", {"category": "availability"}) == 1
        assert registry.get_sample_value("rules_cache_hit_ratio") == 0.5
        assert registry.get_sample_value(
            "rules_operation_duration_seconds_count", {"operation": "availability"}
        ) == 1
        assert registry.get_sample_value("rules_slow_operations_total", {"operation": "availability"}) == 1
        assert b"rules_cache_hits_total" in collector.export()

    def test_reset(self, metrics):
        metrics.record_cache_hit()
        metrics.record_operation("pricing", 5.0)

        metrics.reset()

        assert metrics.summary() == PerformanceMetrics().summary()

    def test_log_summary(self, metrics):
        metrics.record_cache_hit("loyalty")

        with patch.object(metrics, "logger") as mock_logger:
            metrics.log_summary()

        mock_logger.info.assert_called_once()
        assert mock_logger.info.call_args.kwargs["cache"]["hits"] == 1
