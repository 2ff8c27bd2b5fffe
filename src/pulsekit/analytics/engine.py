# src/pulsekit/analytics/engine.py
"""Incremental analytics over the tracked event stream.

The engine keeps three bounded views of what it has seen:

- a window of the most recent events, used for ``get_metrics``
- per-metric time series of raw points (durations)
- one-minute buckets per metric (counts, sum, min, max), kept for 24 hours

Insights combine the metrics with spike detection and a least-squares trend
over each series. Nothing here is persisted; a restart starts from zero.
"""

from __future__ import annotations

import math
import threading
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from pulsekit.contracts.enums import EventType, SessionStatus
from pulsekit.contracts.events import TelemetryEvent, TimeRange

logger = structlog.get_logger(__name__)

RECENT_EVENTS = 1000
SERIES_POINTS = 1000
BUCKET_SIZE = timedelta(minutes=1)
BUCKET_RETENTION = timedelta(hours=24)

# Spike thresholds: latest value against the mean of the last SPIKE_WINDOW points
SPIKE_WINDOW = 10
ERROR_SPIKE_FACTOR = 3.0
DURATION_SPIKE_FACTOR = 2.0

TREND_MIN_POINTS = 5
TREND_STABLE_SLOPE = 0.01

HIGH_ERROR_RATE = 0.1
HIGH_AVG_DURATION_MS = 10_000.0


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    timestamp: datetime
    value: float


@dataclass(slots=True)
class MetricBucket:
    """Aggregate of one metric over one bucket interval."""

    timestamp: datetime
    count: int = 0
    sum: float = 0.0
    min: float = math.inf
    max: float = -math.inf
    event_ids: list[str] = field(default_factory=list)

    def add(self, value: float, event_id: str) -> None:
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self.event_ids.append(event_id)

    @property
    def mean(self) -> float:
        return self.sum / self.count if self.count else 0.0


@dataclass(frozen=True, slots=True)
class Metrics:
    """Aggregate view over the recent-event window."""

    total_events: int
    events_by_type: dict[str, int]
    events_by_category: dict[str, int]
    active_sessions: int
    completed_sessions: int
    errored_sessions: int
    avg_duration: float
    p95_duration: float
    error_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": {
                "total": self.total_events,
                "by_type": dict(self.events_by_type),
                "by_category": dict(self.events_by_category),
            },
            "sessions": {
                "active": self.active_sessions,
                "completed": self.completed_sessions,
                "errored": self.errored_sessions,
            },
            "performance": {
                "avg_duration": self.avg_duration,
                "p95_duration": self.p95_duration,
                "error_rate": self.error_rate,
            },
        }


@dataclass(frozen=True, slots=True)
class Anomaly:
    type: str
    metric: str
    value: float
    threshold: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Trend:
    """Least-squares slope of a series, with R² as confidence in [0, 1]."""

    metric: str
    direction: str
    slope: float
    confidence: float


@dataclass(frozen=True, slots=True)
class Insights:
    metrics: Metrics
    anomalies: tuple[Anomaly, ...]
    trends: tuple[Trend, ...]
    recommendations: tuple[str, ...]


def _percentile(sorted_values: list[float], fraction: float) -> float:
    if not sorted_values:
        return 0.0
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


def _bucket_start(moment: datetime) -> datetime:
    seconds = int(moment.timestamp())
    size = int(BUCKET_SIZE.total_seconds())
    return datetime.fromtimestamp(seconds - seconds % size, tz=UTC)


def linear_trend(values: list[float]) -> tuple[float, float]:
    """Return ``(slope, r_squared)`` of ``values`` against their index.

    A flat series that the line fits exactly has R² of 1.0.
    """
    n = len(values)
    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0, 0.0
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    mean = sum_y / n
    ss_total = sum((v - mean) ** 2 for v in values)
    ss_residual = sum((v - (slope * i + intercept)) ** 2 for i, v in enumerate(values))
    if ss_total == 0:
        return slope, 1.0 if ss_residual == 0 else 0.0
    r_squared = 1 - ss_residual / ss_total
    return slope, max(0.0, min(1.0, r_squared))


def detect_spike(metric: str, points: list[TimeSeriesPoint], factor: float) -> Anomaly | None:
    """Flag the latest point when it exceeds ``factor`` times the recent mean."""
    if len(points) <= SPIKE_WINDOW:
        return None
    recent = points[-SPIKE_WINDOW:]
    mean = sum(p.value for p in recent) / len(recent)
    latest = points[-1]
    threshold = mean * factor
    if latest.value > threshold:
        return Anomaly(type="spike", metric=metric, value=latest.value, threshold=threshold, timestamp=latest.timestamp)
    return None


class AnalyticsEngine:
    """Maintains counters, series and buckets from processed events.

    Metric names:
        counters: ``events.total``, ``events.<type>``, ``events.<category>``,
            ``events.<category>.<action>``, ``errors.total``, ``errors.<category>``
        series: ``performance.duration``, ``performance.<category>.duration``
        buckets: ``events.count``, ``events.<type>.count``,
            ``events.<category>.count``, ``errors.count``, plus the duration
            metrics above

    Thread Safety:
        All state is guarded by one lock; readers get copies.

    Args:
        clock: Returns the current UTC time (bucket expiry is relative to it)
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._events: deque[TelemetryEvent] = deque(maxlen=RECENT_EVENTS)
        self._series: dict[str, deque[TimeSeriesPoint]] = {}
        self._buckets: dict[str, dict[datetime, MetricBucket]] = {}

    def initialize(self) -> None:
        logger.debug("Analytics engine initialized")

    def update(self, event: TelemetryEvent) -> None:
        """Fold one event into every view."""
        with self._lock:
            self._events.append(event)
            self._update_counters(event)
            self._update_series(event)
            self._update_buckets(event)
            self._expire_buckets()

    def _update_counters(self, event: TelemetryEvent) -> None:
        self._counters["events.total"] += 1
        self._counters[f"events.{event.event_type.value}"] += 1
        self._counters[f"events.{event.category}"] += 1
        self._counters[f"events.{event.category}.{event.action}"] += 1
        if event.event_type is EventType.ERROR:
            self._counters["errors.total"] += 1
            self._counters[f"errors.{event.category}"] += 1

    def _add_point(self, metric: str, timestamp: datetime, value: float) -> None:
        series = self._series.get(metric)
        if series is None:
            series = self._series[metric] = deque(maxlen=SERIES_POINTS)
        series.append(TimeSeriesPoint(timestamp, value))

    def _update_series(self, event: TelemetryEvent) -> None:
        if event.duration is not None:
            self._add_point("performance.duration", event.timestamp, event.duration)
            self._add_point(f"performance.{event.category}.duration", event.timestamp, event.duration)

    def _add_to_bucket(self, metric: str, start: datetime, value: float, event_id: str) -> None:
        buckets = self._buckets.setdefault(metric, {})
        bucket = buckets.get(start)
        if bucket is None:
            bucket = buckets[start] = MetricBucket(timestamp=start)
        bucket.add(value, event_id)

    def _update_buckets(self, event: TelemetryEvent) -> None:
        start = _bucket_start(event.timestamp)
        self._add_to_bucket("events.count", start, 1, event.id)
        self._add_to_bucket(f"events.{event.event_type.value}.count", start, 1, event.id)
        self._add_to_bucket(f"events.{event.category}.count", start, 1, event.id)
        if event.event_type is EventType.ERROR:
            self._add_to_bucket("errors.count", start, 1, event.id)
        if event.duration is not None:
            self._add_to_bucket("performance.duration", start, event.duration, event.id)
            self._add_to_bucket(f"performance.{event.category}.duration", start, event.duration, event.id)

    def _expire_buckets(self) -> None:
        cutoff = self._clock() - BUCKET_RETENTION
        for metric, buckets in list(self._buckets.items()):
            for start in [s for s in buckets if s < cutoff]:
                del buckets[start]
            if not buckets:
                del self._buckets[metric]

    # -- reads ---------------------------------------------------------------

    def counters(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def get_time_series(self, metric: str, time_range: TimeRange | None = None) -> list[TimeSeriesPoint]:
        with self._lock:
            points = list(self._series.get(metric, ()))
        if time_range is None:
            return points
        return [p for p in points if time_range.contains(p.timestamp)]

    def get_bucket_data(self, metric: str, time_range: TimeRange | None = None) -> list[MetricBucket]:
        """Buckets for ``metric`` in time order. Returned buckets are copies."""
        with self._lock:
            buckets = [
                MetricBucket(b.timestamp, b.count, b.sum, b.min, b.max, list(b.event_ids))
                for b in self._buckets.get(metric, {}).values()
            ]
        buckets.sort(key=lambda b: b.timestamp)
        if time_range is None:
            return buckets
        return [b for b in buckets if time_range.contains(b.timestamp)]

    def get_metrics(self, time_range: TimeRange | None = None) -> Metrics:
        with self._lock:
            events = list(self._events)
        if time_range is not None:
            events = [e for e in events if time_range.contains(e.timestamp)]

        by_type: Counter[str] = Counter()
        by_category: Counter[str] = Counter()
        seen_types: dict[str, set[EventType]] = {}
        durations: list[float] = []
        errors = 0
        for event in events:
            by_type[event.event_type.value] += 1
            by_category[event.category] += 1
            seen_types.setdefault(event.session_id, set()).add(event.event_type)
            if event.event_type is EventType.ERROR:
                errors += 1
            if event.duration is not None:
                durations.append(event.duration)

        statuses = Counter(_session_status(types) for types in seen_types.values())
        durations.sort()
        return Metrics(
            total_events=len(events),
            events_by_type=dict(by_type),
            events_by_category=dict(by_category),
            active_sessions=statuses[SessionStatus.ACTIVE],
            completed_sessions=statuses[SessionStatus.COMPLETED],
            errored_sessions=statuses[SessionStatus.ERROR],
            avg_duration=sum(durations) / len(durations) if durations else 0.0,
            p95_duration=_percentile(durations, 0.95),
            error_rate=errors / len(events) if events else 0.0,
        )

    def get_insights(self, time_range: TimeRange | None = None) -> Insights:
        metrics = self.get_metrics(time_range)
        return Insights(
            metrics=metrics,
            anomalies=tuple(self._detect_anomalies(time_range)),
            trends=tuple(self._analyze_trends(time_range)),
            recommendations=tuple(recommendations_for(metrics)),
        )

    def _bucket_points(self, metric: str, time_range: TimeRange | None) -> list[TimeSeriesPoint]:
        return [TimeSeriesPoint(b.timestamp, b.count) for b in self.get_bucket_data(metric, time_range)]

    def _detect_anomalies(self, time_range: TimeRange | None) -> list[Anomaly]:
        candidates = [
            detect_spike("errors.count", self._bucket_points("errors.count", time_range), ERROR_SPIKE_FACTOR),
            detect_spike(
                "performance.duration",
                self.get_time_series("performance.duration", time_range),
                DURATION_SPIKE_FACTOR,
            ),
        ]
        return [a for a in candidates if a is not None]

    def _analyze_trends(self, time_range: TimeRange | None) -> list[Trend]:
        series = {
            "events.count": self._bucket_points("events.count", time_range),
            "errors.count": self._bucket_points("errors.count", time_range),
            "performance.duration": self.get_time_series("performance.duration", time_range),
        }
        trends = []
        for metric, points in series.items():
            if len(points) < TREND_MIN_POINTS:
                continue
            slope, confidence = linear_trend([p.value for p in points])
            if abs(slope) < TREND_STABLE_SLOPE:
                direction = "stable"
            else:
                direction = "up" if slope > 0 else "down"
            trends.append(Trend(metric=metric, direction=direction, slope=slope, confidence=confidence))
        return trends

    def shutdown(self) -> None:
        with self._lock:
            self._events.clear()
            self._counters.clear()
            self._series.clear()
            self._buckets.clear()
        logger.debug("Analytics engine shut down")


def _session_status(types: set[EventType]) -> SessionStatus:
    if EventType.END in types:
        return SessionStatus.COMPLETED
    if EventType.ERROR in types:
        return SessionStatus.ERROR
    return SessionStatus.ACTIVE


def recommendations_for(metrics: Metrics) -> list[str]:
    recommendations = []
    if metrics.error_rate > HIGH_ERROR_RATE:
        recommendations.append("High error rate detected. Consider investigating error patterns.")
    if metrics.avg_duration > HIGH_AVG_DURATION_MS:
        recommendations.append("Average duration is high. Consider optimizing performance.")
    if metrics.errored_sessions > metrics.completed_sessions:
        recommendations.append("More sessions are erroring than completing. Review error handling.")
    return recommendations
