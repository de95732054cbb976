"""Metric producers feeding the MetricStore.

Each source is collected on its own interval by the EvaluationScheduler.
Storage and cost metrics come from the archive's stats API; security,
performance and activity producers live outside this package and are
plugged in through CallbackMetricSource.

Usage:
    from photo_alerts.metrics.sources import ArchiveStatsClient, StorageMetricSource, collect_into

    client = ArchiveStatsClient("https://archive.example.com", token="...")
    source = StorageMetricSource(client)
    await collect_into(source, metric_store)
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import httpx

from photo_alerts.clock import Clock, utc_now
from photo_alerts.metrics.models import MetricData
from photo_alerts.metrics.store import MetricStore

logger = logging.getLogger(__name__)

COLLECTION_FAILURE_METRIC = "system.metric_collection_failure"

# Seconds between collections, per producer domain
DEFAULT_COLLECTION_INTERVALS: dict[str, int] = {
    "security": 120,
    "performance": 60,
    "storage": 300,
    "cost": 900,
    "activity": 180,
}


class ArchiveApiError(Exception):
    """The stats API answered without a successful envelope."""
    pass


class ArchiveStatsClient:
    """Client for the archive's stats endpoints.

    Responses use the envelope ``{"success": bool, "data": ..., "error": str}``;
    the client returns ``data`` and raises ArchiveApiError otherwise.
    """

    USAGE_PATH = "/api/stats/usage"
    COST_PATH = "/api/stats/cost"

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Archive API root (e.g. "https://archive.example.com")
            token: Bearer token for the stats endpoints (optional)
            timeout_seconds: HTTP request timeout (default: 10.0 seconds)
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def get_usage_stats(self) -> dict[str, Any]:
        return await self._get(self.USAGE_PATH)

    async def get_cost_dashboard(self) -> dict[str, Any]:
        return await self._get(self.COST_PATH)

    async def _get(self, path: str) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout_seconds, transport=self.transport
        ) as client:
            response = await client.get(path, headers=headers)
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise ArchiveApiError(error or f"Unsuccessful response from {path}")

        data = body.get("data")
        if not isinstance(data, dict):
            raise ArchiveApiError(f"Missing data in response from {path}")
        return data


class MetricSource(ABC):
    """A producer of metric samples.

    Attributes:
        name: Producer domain ("storage", "cost", ...); used in job ids and
            failure tags
        interval_seconds: Seconds between collections
    """

    name: str
    interval_seconds: float

    @abstractmethod
    async def collect(self) -> list[MetricData]:
        """Take one round of samples."""
        pass


class StorageMetricSource(MetricSource):
    """Storage quota, volume and file count from the usage endpoint."""

    def __init__(
        self,
        client: ArchiveStatsClient,
        interval_seconds: float = DEFAULT_COLLECTION_INTERVALS["storage"],
        clock: Clock = utc_now,
    ):
        self.name = "storage"
        self.client = client
        self.interval_seconds = interval_seconds
        self._clock = clock

    async def collect(self) -> list[MetricData]:
        usage = await self.client.get_usage_stats()
        storage = usage.get("storage") or {}
        now = self._clock()
        tags = {"source": "api"}

        return [
            MetricData(
                name="storage.quota_percentage",
                value=usage.get("quota_percentage") or 0,
                timestamp=now,
                tags=tags,
            ),
            MetricData(
                name="storage.total_gb",
                value=storage.get("total_gb") or 0,
                timestamp=now,
                tags=tags,
            ),
            MetricData(
                name="storage.file_count",
                value=storage.get("file_count") or 0,
                timestamp=now,
                tags=tags,
            ),
        ]


class CostMetricSource(MetricSource):
    """Monthly cost, absolute and as a percentage of the budget."""

    def __init__(
        self,
        client: ArchiveStatsClient,
        monthly_budget_usd: float = 10.0,
        interval_seconds: float = DEFAULT_COLLECTION_INTERVALS["cost"],
        clock: Clock = utc_now,
    ):
        if monthly_budget_usd <= 0:
            raise ValueError(f"monthly_budget_usd must be positive, got {monthly_budget_usd}")

        self.name = "cost"
        self.client = client
        self.monthly_budget_usd = monthly_budget_usd
        self.interval_seconds = interval_seconds
        self._clock = clock

    async def collect(self) -> list[MetricData]:
        dashboard = await self.client.get_cost_dashboard()
        total_usd = (dashboard.get("monthly_cost") or {}).get("total_usd") or 0
        now = self._clock()

        return [
            MetricData(
                name="cost.monthly_budget_percentage",
                value=total_usd / self.monthly_budget_usd * 100,
                timestamp=now,
                tags={"source": "api", "budget": f"{self.monthly_budget_usd:g}"},
            ),
            MetricData(
                name="cost.monthly_total_usd",
                value=total_usd,
                timestamp=now,
                tags={"source": "api"},
            ),
        ]


class CallbackMetricSource(MetricSource):
    """Wraps an async callable returning samples (MetricData or mappings).

    Mappings need ``name`` and ``value``; the timestamp defaults to now.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Iterable[MetricData | Mapping[str, Any]]]],
        interval_seconds: float | None = None,
        clock: Clock = utc_now,
    ):
        if interval_seconds is None:
            interval_seconds = DEFAULT_COLLECTION_INTERVALS.get(name, 60)

        self.name = name
        self.callback = callback
        self.interval_seconds = interval_seconds
        self._clock = clock

    async def collect(self) -> list[MetricData]:
        samples = []
        for sample in await self.callback():
            if not isinstance(sample, MetricData):
                data = dict(sample)
                data.setdefault("timestamp", self._clock())
                sample = MetricData.model_validate(data)
            samples.append(sample)
        return samples


async def collect_into(source: MetricSource, store: MetricStore, clock: Clock = utc_now) -> int:
    """Collect one round from ``source`` into ``store``.

    Never raises for collection errors: the failure is logged and recorded as
    a ``system.metric_collection_failure`` sample tagged with the source name
    and the error message.

    Returns:
        Number of samples added (0 on failure)
    """
    try:
        samples = await source.collect()
    except Exception as e:
        logger.exception("Failed to collect %s metrics: %s", source.name, e)
        store.add_metric(
            MetricData(
                name=COLLECTION_FAILURE_METRIC,
                value=1,
                timestamp=clock(),
                tags={"metric": source.name, "error": str(e)},
            )
        )
        return 0

    for sample in samples:
        store.add_metric(sample)

    logger.debug("Collected %d %s metrics", len(samples), source.name)
    return len(samples)
