from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from random import Random

from loadmon.config import HarnessConfig
from loadmon.inspect import ProcessInspector, ResourceSampler
from loadmon.inspect.sampler import describe
from loadmon.loadgen.batches import Executor, Sleep
from loadmon.metrics import (
    MemoryDelta,
    PerfReport,
    PerfTestResult,
    PerfTestSummary,
    ResourceSnapshot,
    metric_delta,
    summarize_results,
)
from loadmon.monitor.server import ServerProcess, wait_until_listening
from loadmon.workload import unique_ids

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PerformanceMonitor:
    """Loads unique items one at a time and attributes resource deltas to each.

    Requests are never overlapped so the before/after snapshots around an item
    only see that item's work plus the settle delay.
    """

    def __init__(
        self,
        config: HarnessConfig,
        inspector: ProcessInspector,
        execute: Executor,
        server: ServerProcess | None = None,
        rng: Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.inspector = inspector
        self.sampler = ResourceSampler(inspector, config.target.port)
        self.execute = execute
        self.server = server
        self.rng = rng or Random(config.seed)
        self._sleep = sleep

    async def run(self) -> PerfReport:
        logger.info("Starting sequential performance test")
        try:
            if self.server is not None:
                self.server.start()
                pid = await wait_until_listening(
                    self.inspector.resolve_listener,
                    self.config.target.port,
                    self.config.server.startup_timeout_sec,
                    sleep=self._sleep,
                )
                logger.info("Server is listening on port %s (pid %s)", self.config.target.port, pid)
            initial = await self._snapshot()
            logger.info("Baseline: %s", describe(initial))

            item_ids = unique_ids(
                self.config.unique_item_count, self.config.target.max_id, self.rng
            )
            logger.info("Testing %d items: %s", len(item_ids), item_ids)

            results: list[PerfTestResult] = []
            for index, item_id in enumerate(item_ids):
                logger.info("--- Item %s (%d/%d) ---", item_id, index + 1, len(item_ids))
                results.append(await self.measure_item(item_id, index + 1))
                if index < len(item_ids) - 1:
                    await self._sleep(self.config.inter_item_delay_sec)
            final = await self._snapshot()
        finally:
            if self.server is not None:
                await asyncio.to_thread(self.server.stop)

        summary = summarize_results(
            results,
            initial,
            final,
            self.config.high_memory_threshold_mb,
            _now_iso(),
        )
        log_summary(summary, len(results), self.config.high_memory_threshold_mb)
        return PerfReport(summary=summary, results=tuple(results))

    async def measure_item(self, item_id: int, run_number: int) -> PerfTestResult:
        url = self.config.target.url_for(item_id)
        before = await self._snapshot()
        outcome = await self.execute(url)
        if not outcome.ok:
            logger.warning("Failed to load %s: %s", url, outcome.error)
            return PerfTestResult(
                item_id=item_id,
                run_number=run_number,
                load_time_ms=-1,
                content_size=None,
                before=before,
                after=before,
                memory_delta=None,
                timestamp=_now_iso(),
                error=outcome.error,
            )

        await self._sleep(self.config.post_request_settle_sec)
        after = await self._snapshot()
        delta = MemoryDelta(
            rss=metric_delta(before.rss_mb, after.rss_mb),
            heap_used=metric_delta(before.heap_mb, after.heap_mb),
        )
        logger.info(
            "Loaded in %.2fms (%d KB), rss delta %s MB",
            outcome.latency_ms,
            round(outcome.bytes_received / 1024),
            "n/a" if delta.rss is None else f"{delta.rss:+.2f}",
        )
        return PerfTestResult(
            item_id=item_id,
            run_number=run_number,
            load_time_ms=outcome.latency_ms,
            content_size=outcome.bytes_received,
            before=before,
            after=after,
            memory_delta=delta,
            timestamp=_now_iso(),
        )

    async def _snapshot(self) -> ResourceSnapshot:
        return await asyncio.to_thread(self.sampler.snapshot)


def log_summary(summary: PerfTestSummary, attempted: int, threshold_mb: float) -> None:
    if summary.total_runs == 0:
        logger.warning("No valid results to analyze (%d attempted)", attempted)
        return
    logger.info("Total unique items tested: %d", summary.total_items)
    logger.info("Successful runs: %d/%d", summary.total_runs, attempted)
    logger.info(
        "Load time avg/min/max: %.2f / %.2f / %.2f ms",
        summary.avg_load_time_ms,
        summary.min_load_time_ms,
        summary.max_load_time_ms,
    )
    logger.info("Average CPU usage: %.1f%%", summary.avg_cpu_percent)
    logger.info("Total memory delta: %+.2f MB", summary.total_memory_delta_mb)
    mem = summary.global_memory
    logger.info(
        "Heap initial=%s final=%s peak=%s growth=%s",
        mem.initial_heap_mb,
        mem.final_heap_mb,
        mem.peak_heap_mb,
        mem.heap_growth_mb,
    )
    if mem.high_memory:
        logger.warning(
            "High peak memory usage (%s MB above baseline, threshold %s MB)",
            mem.peak_increase_mb,
            threshold_mb,
        )
    else:
        logger.info("Reasonable peak memory usage (%s MB above baseline)", mem.peak_increase_mb)
