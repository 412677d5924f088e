"""
Metrics collection for the exception notification pipeline.

Tracks how many exceptions went through each stage and how long each
notification provider took to deliver. Counters live in memory and are
exposed as a plain dictionary; :func:`emit_metric` logs individual values
for log-based monitoring.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from exception_notify.utils.logging import get_logger

logger = get_logger(__name__)


class PipelineMetrics:
    """
    Thread-safe counters for the notification pipeline.

    Outcomes:
    - processed: exceptions that passed the enable switch and environment gate
    - filtered: dropped by the exception filter
    - suppressed: dropped by deduplication
    - delivered: at least one provider succeeded
    - failed: no provider succeeded
    """

    OUTCOMES = ("processed", "filtered", "suppressed", "delivered", "failed")

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at = datetime.now(timezone.utc)
        self.counters: Dict[str, int] = {outcome: 0 for outcome in self.OUTCOMES}
        self.provider_calls: Dict[str, Dict[str, int]] = {}
        # Running aggregates per provider: count, min_ms, max_ms, total_ms
        self.provider_latencies: Dict[str, Dict[str, float]] = {}

    def record(self, outcome: str) -> None:
        """
        Increment an outcome counter.

        Args:
            outcome: One of :attr:`OUTCOMES`
        """
        if outcome not in self.counters:
            raise ValueError(f"Unknown outcome: {outcome}")
        with self._lock:
            self.counters[outcome] += 1

    def record_delivery(self, provider: str, success: bool, duration_ms: float) -> None:
        """
        Record a provider delivery attempt and its latency.

        Args:
            provider: Provider name
            success: Whether delivery succeeded
            duration_ms: Call duration in milliseconds
        """
        with self._lock:
            calls = self.provider_calls.setdefault(provider, {"success": 0, "failure": 0})
            calls["success" if success else "failure"] += 1
            stats = self.provider_latencies.get(provider)
            if stats is None:
                self.provider_latencies[provider] = {
                    "count": 1,
                    "min_ms": duration_ms,
                    "max_ms": duration_ms,
                    "total_ms": duration_ms,
                }
            else:
                stats["count"] += 1
                stats["min_ms"] = min(stats["min_ms"], duration_ms)
                stats["max_ms"] = max(stats["max_ms"], duration_ms)
                stats["total_ms"] += duration_ms

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        with self._lock:
            summary: Dict[str, Any] = {
                "started_at": self.started_at.isoformat(),
                **self.counters,
                "providers": {name: dict(calls) for name, calls in self.provider_calls.items()},
            }

            latency_stats = {}
            for provider, stats in self.provider_latencies.items():
                latency_stats[provider] = {
                    "count": int(stats["count"]),
                    "min_ms": round(stats["min_ms"], 2),
                    "max_ms": round(stats["max_ms"], 2),
                    "avg_ms": round(stats["total_ms"] / stats["count"], 2),
                }
            if latency_stats:
                summary["provider_latencies"] = latency_stats

        return summary


@contextmanager
def track_delivery(metrics: Optional[PipelineMetrics], provider: str) -> Iterator[Dict[str, Any]]:
    """
    Context manager timing one provider delivery.

    The caller stores the boolean result in the yielded dict under
    ``"success"``; an exception counts as a failure and propagates.

    Usage:
        with track_delivery(metrics, "dingtalk") as outcome:
            outcome["success"] = provider.send(record)
    """
    start_time = time.perf_counter()
    outcome: Dict[str, Any] = {"success": False}

    try:
        yield outcome
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        outcome["duration_ms"] = duration_ms
        if metrics:
            metrics.record_delivery(provider, bool(outcome["success"]), duration_ms)


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a structured log line.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
