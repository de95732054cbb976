"""Metric samples, their retention store and their producers."""

from photo_alerts.metrics.models import MetricData
from photo_alerts.metrics.sources import (
    COLLECTION_FAILURE_METRIC,
    DEFAULT_COLLECTION_INTERVALS,
    ArchiveApiError,
    ArchiveStatsClient,
    CallbackMetricSource,
    CostMetricSource,
    MetricSource,
    StorageMetricSource,
    collect_into,
)
from photo_alerts.metrics.store import MetricStore

__all__ = [
    "COLLECTION_FAILURE_METRIC",
    "DEFAULT_COLLECTION_INTERVALS",
    "ArchiveApiError",
    "ArchiveStatsClient",
    "CallbackMetricSource",
    "CostMetricSource",
    "MetricData",
    "MetricSource",
    "MetricStore",
    "StorageMetricSource",
    "collect_into",
]
