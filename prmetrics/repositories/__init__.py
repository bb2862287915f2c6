"""Repository layer for metric rows."""

from .metrics import (
    MetricRowRepository,
    MetricSink,
    PostgresMetricSink,
    build_upsert,
    metric_values,
)

__all__ = [
    "MetricRowRepository",
    "MetricSink",
    "PostgresMetricSink",
    "build_upsert",
    "metric_values",
]
