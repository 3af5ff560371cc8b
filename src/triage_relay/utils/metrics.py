"""In-memory metrics for the relay's observability surface.

Counts inbound events, skips, decisions taken, dispatch side effects and
errors, plus timing histograms. Exposed as a JSON snapshot and in
Prometheus text format by the webhook server.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import Any

import structlog

log = structlog.get_logger()

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


class MetricType(StrEnum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricValue:
    """A single metric value with metadata."""

    name: str
    type: MetricType
    value: float
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


class Counter:
    """A monotonically increasing counter.

    Example:
        counter = Counter("events_received", "Total events received")
        counter.inc()
        counter.inc(labels={"reason": "duplicate"})
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the counter.

        Args:
            value: Amount to increment (default 1)
            labels: Optional labels for this observation
        """
        if value < 0:
            raise ValueError("Counter can only increase")

        with self._lock:
            self._values[_label_key(labels)] += value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Get the value for one label set (no labels means the unlabelled series)."""
        with self._lock:
            return self._values.get(_label_key(labels), 0)

    def total(self) -> float:
        """Sum across every label set."""
        with self._lock:
            return sum(self._values.values())

    def get_all(self) -> list[MetricValue]:
        """Get all counter values with their labels."""
        with self._lock:
            return [
                MetricValue(
                    name=self.name,
                    type=MetricType.COUNTER,
                    value=value,
                    labels=dict(label_key),
                    help_text=self.help_text,
                )
                for label_key, value in self._values.items()
            ]


class Gauge:
    """A metric that can go up or down."""

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._value = 0.0
        self._lock = Lock()

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def inc(self, value: float = 1) -> None:
        with self._lock:
            self._value += value

    def dec(self, value: float = 1) -> None:
        with self._lock:
            self._value -= value

    def get(self) -> float:
        with self._lock:
            return self._value


class Histogram:
    """A histogram metric for tracking value distributions.

    Example:
        histogram = Histogram("processing_duration_seconds", "Processing duration")
        histogram.observe(0.5)
    """

    # Classification round-trips take tens of seconds
    DEFAULT_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf"))

    def __init__(
        self,
        name: str,
        help_text: str = "",
        buckets: tuple[float, ...] | None = None,
    ) -> None:
        self.name = name
        self.help_text = help_text
        self._buckets = buckets or self.DEFAULT_BUCKETS
        self._observations: list[float] = []
        self._lock = Lock()

    def observe(self, value: float) -> None:
        """Record an observation."""
        with self._lock:
            self._observations.append(value)

    def get_stats(self) -> dict[str, float]:
        """Get histogram statistics.

        Returns:
            Dictionary with count, sum, min, max, mean
        """
        with self._lock:
            values = list(self._observations)

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}

        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
        }

    def get_buckets(self) -> dict[float, int]:
        """Get cumulative bucket counts (Prometheus ``le`` semantics)."""
        with self._lock:
            values = list(self._observations)

        return {bucket: sum(1 for v in values if v <= bucket) for bucket in self._buckets}


class MetricsRegistry:
    """Registry for all relay metrics.

    The relay receives a registry at construction; ``get_metrics()``
    returns a process-wide default for the production wiring.

    Example:
        registry = MetricsRegistry()
        registry.events_received.inc()
        snapshot = registry.get_all_metrics(dedup_size=3)
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        # Inbound events
        self.events_received = Counter(
            "triage_relay_events_received_total",
            "Total issue events received",
        )
        self.events_processed = Counter(
            "triage_relay_events_processed_total",
            "Total events that completed classification and dispatch",
        )
        self.events_skipped = Counter(
            "triage_relay_events_skipped_total",
            "Total events skipped, labelled by reason (disabled, duplicate)",
        )

        # Decisions and side effects
        self.decisions = Counter(
            "triage_relay_decisions_total",
            "Total decisions, labelled by decision",
        )
        self.auto_actions = Counter(
            "triage_relay_auto_actions_total",
            "Total fix agents started automatically",
        )
        self.fix_triggers = Counter(
            "triage_relay_fix_triggers_total",
            "Total fix agents started from a comment trigger",
        )
        self.clarifications_posted = Counter(
            "triage_relay_clarifications_posted_total",
            "Total clarification comments posted",
        )
        self.notifications_sent = Counter(
            "triage_relay_notifications_sent_total",
            "Total notifications delivered",
        )

        # Errors
        self.errors = Counter(
            "triage_relay_errors_total",
            "Total errors, labelled by kind",
        )

        # Durations
        self.processing_duration = Histogram(
            "triage_relay_processing_duration_seconds",
            "Background processing duration in seconds",
        )
        self.classifier_duration = Histogram(
            "triage_relay_classifier_duration_seconds",
            "Classifier round-trip duration in seconds",
        )

        self.active_tasks = Gauge(
            "triage_relay_active_tasks",
            "Number of background tasks in flight",
        )

        self.started_at = datetime.now(UTC)
        self._start_time = time.monotonic()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        """Get the process-wide default registry."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_uptime_seconds(self) -> float:
        return time.monotonic() - self._start_time

    def _counters(self) -> list[Counter]:
        return [
            self.events_received,
            self.events_processed,
            self.events_skipped,
            self.decisions,
            self.auto_actions,
            self.fix_triggers,
            self.clarifications_posted,
            self.notifications_sent,
            self.errors,
        ]

    def get_all_metrics(self, dedup_size: int = 0) -> dict[str, Any]:
        """Get a JSON-serializable snapshot of every metric.

        Args:
            dedup_size: Current number of dedup cache entries

        Returns:
            Dictionary of all metrics
        """
        return {
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": self.get_uptime_seconds(),
            "events": {
                "received": self.events_received.get(),
                "processed": self.events_processed.get(),
                "skipped": self.events_skipped.total(),
                "skipped_disabled": self.events_skipped.get({"reason": "disabled"}),
                "skipped_duplicate": self.events_skipped.get({"reason": "duplicate"}),
            },
            "actions": {
                "auto_spawned": self.auto_actions.get(),
                "fix_triggers": self.fix_triggers.get(),
                "clarifications_posted": self.clarifications_posted.get(),
                "offers": self.decisions.get({"decision": "offer"}),
                "notifications_sent": self.notifications_sent.get(),
            },
            "errors": {
                "total": self.errors.total(),
                "by_kind": {m.labels.get("kind", ""): m.value for m in self.errors.get_all()},
            },
            "processing": {
                "active_tasks": self.active_tasks.get(),
                "duration_stats": self.processing_duration.get_stats(),
                "classifier_duration_stats": self.classifier_duration.get_stats(),
            },
            "dedup_size": dedup_size,
        }

    def to_prometheus_format(self, dedup_size: int = 0) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []

        for counter in self._counters():
            if counter.help_text:
                lines.append(f"# HELP {counter.name} {counter.help_text}")
            lines.append(f"# TYPE {counter.name} counter")
            for metric in counter.get_all():
                if metric.labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in metric.labels.items())
                    lines.append(f"{counter.name}{{{label_str}}} {metric.value}")
                else:
                    lines.append(f"{counter.name} {metric.value}")

        for histogram in (self.processing_duration, self.classifier_duration):
            lines.append(f"# HELP {histogram.name} {histogram.help_text}")
            lines.append(f"# TYPE {histogram.name} histogram")
            for bucket, count in histogram.get_buckets().items():
                le = "+Inf" if bucket == float("inf") else str(bucket)
                lines.append(f'{histogram.name}_bucket{{le="{le}"}} {count}')
            stats = histogram.get_stats()
            lines.append(f"{histogram.name}_sum {stats['sum']}")
            lines.append(f"{histogram.name}_count {stats['count']}")

        lines.append(f"# HELP {self.active_tasks.name} {self.active_tasks.help_text}")
        lines.append(f"# TYPE {self.active_tasks.name} gauge")
        lines.append(f"{self.active_tasks.name} {self.active_tasks.get()}")

        lines.append("# HELP triage_relay_dedup_entries Entries in the dedup cache")
        lines.append("# TYPE triage_relay_dedup_entries gauge")
        lines.append(f"triage_relay_dedup_entries {dedup_size}")

        lines.append("# HELP triage_relay_uptime_seconds Relay uptime in seconds")
        lines.append("# TYPE triage_relay_uptime_seconds gauge")
        lines.append(f"triage_relay_uptime_seconds {self.get_uptime_seconds()}")

        return "\n".join(lines)


def get_metrics() -> MetricsRegistry:
    """Get the process-wide default metrics registry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer(metrics.classifier_duration):
            await gateway.classify(...)
    """

    def __init__(self, histogram: Histogram) -> None:
        self._histogram = histogram
        self._start: float | None = None

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._start is not None:
            self._histogram.observe(time.perf_counter() - self._start)
