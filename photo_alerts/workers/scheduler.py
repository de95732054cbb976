"""Periodic rule evaluation and metric collection."""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import STATE_PAUSED
from apscheduler.triggers.interval import IntervalTrigger

from photo_alerts.metrics.sources import MetricSource, collect_into

if TYPE_CHECKING:
    from photo_alerts.alerts.service import AlertService

logger = logging.getLogger(__name__)

EVALUATION_JOB_ID = "rule_evaluation"


def collection_job_id(source: MetricSource) -> str:
    return f"collect:{source.name}"


class EvaluationScheduler:
    """Drives AlertService.run_evaluation_cycle and the metric sources.

    Jobs:
        rule_evaluation: every ``evaluation_interval_seconds``
        collect:{name}: one per source, every ``source.interval_seconds``

    Each job run is an asyncio task owned by the scheduler; shutdown()
    cancels any still running. While not visible the scheduler is paused;
    becoming visible again runs one catch-up collection and evaluation.
    """

    def __init__(
        self,
        service: "AlertService",
        sources: Iterable[MetricSource] = (),
        evaluation_interval_seconds: float = 60,
    ):
        self.service = service
        self.sources = list(sources)
        self.evaluation_interval_seconds = evaluation_interval_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._visible = True

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def paused(self) -> bool:
        return self._scheduler is not None and self._scheduler.state == STATE_PAUSED

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    async def start(self) -> None:
        """Start periodic jobs and run one immediate collection of every source."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler()

        # Coroutine functions run as tasks on this loop; plain callables would
        # be sent to a worker thread with no event loop.
        self._scheduler.add_job(
            self._evaluation_job,
            IntervalTrigger(seconds=self.evaluation_interval_seconds),
            id=EVALUATION_JOB_ID,
            name="Evaluate alert rules",
        )

        for source in self.sources:
            self._scheduler.add_job(
                self._collection_job,
                IntervalTrigger(seconds=source.interval_seconds),
                args=[source],
                id=collection_job_id(source),
                name=f"Collect {source.name} metrics",
            )

        self._scheduler.start(paused=not self._visible)
        logger.info(
            "Evaluation scheduler started (%d metric sources, evaluation every %ss)",
            len(self.sources),
            self.evaluation_interval_seconds,
        )

        if self._visible:
            await self.collect_all()

    async def set_visible(self, visible: bool) -> None:
        """Pause periodic work while hidden; catch up once when shown again."""
        if visible == self._visible:
            return
        self._visible = visible

        if self._scheduler is None:
            return

        if not visible:
            self._scheduler.pause()
            logger.info("Evaluation scheduler paused")
            return

        self._scheduler.resume()
        logger.info("Evaluation scheduler resumed, running catch-up pass")
        await self.run_once()

    async def collect_all(self) -> None:
        if self.sources:
            await asyncio.gather(*(self._run_collection(source) for source in self.sources))

    async def run_once(self) -> None:
        """One collection of every source followed by one evaluation."""
        await self.collect_all()
        await self._run_evaluation()

    async def shutdown(self) -> None:
        """Stop the scheduler and cancel in-flight job tasks."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        logger.info("Evaluation scheduler stopped")

    async def _evaluation_job(self) -> None:
        await self._tracked(self._run_evaluation())

    async def _collection_job(self, source: MetricSource) -> None:
        await self._tracked(self._run_collection(source))

    async def _tracked(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a job body inside the current task, registered for shutdown()."""
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            await coro
        finally:
            if task is not None:
                self._tasks.discard(task)

    async def _run_evaluation(self) -> None:
        try:
            new_alerts = await self.service.run_evaluation_cycle()
            if new_alerts:
                logger.info("Evaluation created %d alerts", len(new_alerts))
        except Exception as e:
            logger.exception("Rule evaluation failed: %s", e)

    async def _run_collection(self, source: MetricSource) -> None:
        try:
            await collect_into(source, self.service.metric_store, clock=self.service.clock)
        except Exception as e:
            logger.exception("Metric collection for %s failed: %s", source.name, e)
