"""In-process analytics over tracked events."""

from pulsekit.analytics.engine import (
    AnalyticsEngine,
    Anomaly,
    Insights,
    MetricBucket,
    Metrics,
    TimeSeriesPoint,
    Trend,
)

__all__ = [
    "AnalyticsEngine",
    "Anomaly",
    "Insights",
    "MetricBucket",
    "Metrics",
    "TimeSeriesPoint",
    "Trend",
]
