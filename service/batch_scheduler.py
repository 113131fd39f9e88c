"""Sequential batches of concurrently dispatched jobs"""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional

from schedule.schedule_table import ScheduleEntry, entries_by_batch
from service.dependency_resolver import SOURCE_DATA_KEY, DependencyResolver
from service.dto import JobOutcome
from service.job_adapter import JobAdapter
from service.run_context import ResolvedDependencies

logger = logging.getLogger(__name__)

BatchCallback = Callable[[int, List[ScheduleEntry]], None]


class BatchScheduler:
    """
    Runs today's entries batch by batch.

    Batch N+1 starts only after every job of batch N has settled. A failing
    job never stops its batch or the ones after it.
    """

    def __init__(self, adapter: JobAdapter, resolver: DependencyResolver, inter_batch_delay_seconds: float = 0.0):
        self.adapter = adapter
        self.resolver = resolver
        self.inter_batch_delay_seconds = inter_batch_delay_seconds

    @property
    def context(self):
        return self.adapter.context

    async def _resolve_dependencies(self, outcomes: Dict[str, JobOutcome]) -> ResolvedDependencies:
        ctx = self.context
        return await self.resolver.resolve_campaign_and_ad_group_ids(
            outcomes.get(SOURCE_DATA_KEY), ctx.user_id, ctx.region, ctx.country
        )

    async def run_batch(self, batch_index: int, batch: List[ScheduleEntry],
                        outcomes: Dict[str, JobOutcome]) -> Dict[str, JobOutcome]:
        ctx = self.context
        deps = ResolvedDependencies()
        if any(e.needs_dependencies for e in batch):
            deps = await self._resolve_dependencies(outcomes)

        results = await asyncio.gather(*(self.adapter.invoke(e, deps) for e in batch), return_exceptions=True)

        settled: Dict[str, JobOutcome] = {}
        for entry, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error(f"{entry.job_key} raised outside the adapter: {result}", extra={
                    "trace_id": ctx.trace_id, "job_key": entry.job_key, "batch": batch_index,
                })
                result = JobOutcome(job_key=entry.job_key, data_key=entry.data_key, success=False,
                                    error=str(result) or result.__class__.__name__)
            settled[entry.data_key] = result

        succeeded = sum(1 for o in settled.values() if o.success)
        logger.info(f"Batch {batch_index} settled: {succeeded}/{len(settled)} succeeded", extra={
            "trace_id": ctx.trace_id, "user_id": ctx.user_id, "batch": batch_index,
        })
        return settled

    async def run(self, entries: Iterable[ScheduleEntry],
                  on_batch_start: Optional[BatchCallback] = None) -> Dict[str, JobOutcome]:
        outcomes: Dict[str, JobOutcome] = {}
        batches = list(entries_by_batch(entries).items())

        for position, (batch_index, batch) in enumerate(batches):
            if on_batch_start is not None:
                on_batch_start(batch_index, batch)
            if batch:
                outcomes.update(await self.run_batch(batch_index, batch, outcomes))
            if batch and self.inter_batch_delay_seconds > 0 and position < len(batches) - 1:
                await asyncio.sleep(self.inter_batch_delay_seconds)

        return outcomes
