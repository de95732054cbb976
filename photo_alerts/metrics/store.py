"""Bounded per-metric time-series buffer.

MetricStore keeps every sample of every metric name for a retention window
(24 hours by default) and serves the reads the condition evaluator needs:
the latest sample and the samples inside a lookback window.

Usage:
    from photo_alerts.metrics.store import MetricStore

    store = MetricStore()
    store.add_metric(MetricData(name="storage.quota_percentage", value=85))
    store.latest("storage.quota_percentage")
    store.window("security.failed_logins", minutes=15)
"""

import logging
from datetime import datetime, timedelta

from photo_alerts.clock import Clock, utc_now
from photo_alerts.metrics.models import MetricData

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_HOURS = 24


class MetricStore:
    """Per-name sample history with time-based retention.

    Samples are kept in insertion order; ``latest`` is the last sample added,
    not the one with the greatest timestamp. Lookups for unknown names return
    empty results and never raise.
    """

    def __init__(
        self,
        retention_hours: float = DEFAULT_RETENTION_HOURS,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            retention_hours: Samples older than this are pruned on insert
            clock: Source of "now" for pruning and window reads

        Raises:
            ValueError: If retention_hours is not positive
        """
        if retention_hours <= 0:
            raise ValueError(f"retention_hours must be positive, got {retention_hours}")

        self._retention = timedelta(hours=retention_hours)
        self._clock = clock
        self._series: dict[str, list[MetricData]] = {}

    @property
    def retention(self) -> timedelta:
        return self._retention

    def add_metric(self, metric: MetricData) -> None:
        """Append a sample and prune that metric's expired samples."""
        history = self._series.setdefault(metric.name, [])
        history.append(metric)

        cutoff = self._clock() - self._retention
        self._series[metric.name] = [m for m in history if m.timestamp > cutoff]

    def get_history(self, name: str, hours: float = DEFAULT_RETENTION_HOURS) -> list[MetricData]:
        """Samples of ``name`` newer than ``hours`` ago, oldest first."""
        cutoff = self._clock() - timedelta(hours=hours)
        return [m for m in self._series.get(name, []) if m.timestamp > cutoff]

    def latest(self, name: str) -> MetricData | None:
        history = self._series.get(name)
        if not history:
            return None
        return history[-1]

    def window(self, name: str, minutes: float, now: datetime | None = None) -> list[MetricData]:
        """Samples of ``name`` with timestamp strictly after ``now - minutes``."""
        if now is None:
            now = self._clock()
        cutoff = now - timedelta(minutes=minutes)
        return [m for m in self._series.get(name, []) if m.timestamp > cutoff]

    def has_samples(self, name: str) -> bool:
        return bool(self._series.get(name))

    def names(self) -> list[str]:
        return [name for name, history in self._series.items() if history]

    def clear(self) -> None:
        self._series.clear()
        logger.debug("Metric store cleared")
