"""
In-process performance counters for the business rules engine.

Counters are plain attribute increments; every engine operation runs on the
event loop so no lock is taken. When a MetricsCollector is attached the same
samples are mirrored into Prometheus.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


AVAILABILITY = "availability"
PRICING = "pricing"
PREP_TIME = "prep_time"
LOYALTY = "loyalty"

# Summary key used for the per-operation count
OPERATION_COUNT_KEYS = {
    AVAILABILITY: "checks",
    PRICING: "calculations",
    PREP_TIME: "estimates",
    LOYALTY: "calculations",
}

DEFAULT_SLOW_THRESHOLD_MS = 100.0


@dataclass
class OperationStats:
    """Running totals for one timed operation."""
    count: int = 0
    total_ms: float = 0.0
    slow: int = 0

    @property
    def avg_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class PerformanceMetrics:
    """Cache hit rate and per-operation latency counters."""

    def __init__(
        self,
        collector: Optional[MetricsCollector] = None,
        slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS
    ):
        self.logger = get_logger("business_rules.metrics")
        self.collector = collector
        self.slow_threshold_ms = slow_threshold_ms
        self.cache_hits = 0
        self.cache_misses = 0
        self.operations: Dict[str, OperationStats] = {
            name: OperationStats() for name in OPERATION_COUNT_KEYS
        }

    def record_cache_hit(self, category: str = "unknown"):
        self.cache_hits += 1
        if self.collector:
            self.collector.increment_counter("rules_cache_hits_total", category=category)
            self.collector.set_gauge("rules_cache_hit_ratio", self.cache_hit_rate())

    def record_cache_miss(self, category: str = "unknown"):
        self.cache_misses += 1
        if self.collector:
            self.collector.increment_counter("rules_cache_misses_total", category=category)
            self.collector.set_gauge("rules_cache_hit_ratio", self.cache_hit_rate())

    def record_reload(self, category: str, status: str):
        if self.collector:
            self.collector.increment_counter("rules_cache_reloads_total", category=category, status=status)

    def record_operation(self, operation: str, duration_ms: float):
        """Add one timing sample for an operation."""
        stats = self.operations.get(operation)
        if stats is None:
            stats = self.operations[operation] = OperationStats()

        stats.count += 1
        stats.total_ms += duration_ms

        if self.collector:
            self.collector.observe_histogram(
                "rules_operation_duration_seconds",
                duration_ms / 1000.0,
                operation=operation
            )

        if duration_ms > self.slow_threshold_ms:
            stats.slow += 1
            if self.collector:
                self.collector.increment_counter("rules_slow_operations_total", operation=operation)
            self.logger.warning(
                "Slow business rule operation",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_threshold_ms
            )

    @contextmanager
    def timer(self, operation: str) -> Iterator[None]:
        """Time the enclosed block and record it even when it raises."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.record_operation(operation, (time.perf_counter() - start_time) * 1000)

    def cache_hit_rate(self) -> float:
        """Hit ratio in [0, 1]; 0 before any lookup."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total

    def summary(self) -> Dict[str, Any]:
        """Diagnostics summary as served by the admin endpoint."""
        result: Dict[str, Any] = {
            "cache": {
                "hit_rate": f"{self.cache_hit_rate() * 100:.1f}%",
                "hits": self.cache_hits,
                "misses": self.cache_misses,
            }
        }
        for operation, count_key in OPERATION_COUNT_KEYS.items():
            stats = self.operations[operation]
            result[operation] = {
                count_key: stats.count,
                "avg_time_ms": f"{stats.avg_ms:.2f}",
                "slow_operations": stats.slow,
            }
        return result

    def log_summary(self):
        summary = self.summary()
        self.logger.info("Business rules performance metrics", **summary)

    def reset(self):
        self.cache_hits = 0
        self.cache_misses = 0
        for stats in self.operations.values():
            stats.count = 0
            stats.total_ms = 0.0
            stats.slow = 0
