from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Sequence

from loadmon.inspect.sampler import describe
from loadmon.metrics import BatchResult, RequestOutcome, ResourceSnapshot, RunReport

logger = logging.getLogger(__name__)

Executor = Callable[[str], Awaitable[RequestOutcome]]
Sampler = Callable[[], ResourceSnapshot]
ProgressCallback = Callable[[int, int], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


def plan_batches(urls: Sequence[str], width: int) -> list[list[str]]:
    if width <= 0:
        msg = f"Batch width must be positive, got {width}"
        raise ValueError(msg)
    return [list(urls[i : i + width]) for i in range(0, len(urls), width)]


async def run_batch(index: int, urls: Sequence[str], execute: Executor) -> BatchResult:
    started = time.perf_counter()
    outcomes = await asyncio.gather(*(execute(url) for url in urls))
    return BatchResult(
        index=index,
        outcomes=tuple(outcomes),
        duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
    )


async def run_batches(
    name: str,
    urls: Sequence[str],
    width: int,
    execute: Executor,
    sample: Sampler,
    inter_batch_delay_sec: float = 0.1,
    progress: ProgressCallback | None = None,
    sleep: Sleep = asyncio.sleep,
) -> RunReport:
    batches = plan_batches(urls, width)
    logger.info("Starting %s: %d requests, %d parallel", name, len(urls), width)

    initial = await asyncio.to_thread(sample)
    logger.info("Initial resources: %s", describe(initial))

    outcomes: list[RequestOutcome] = []
    started = time.perf_counter()
    for index, chunk in enumerate(batches):
        result = await run_batch(index, chunk, execute)
        outcomes.extend(result.outcomes)
        logger.info(
            "Batch %d/%d: %d successful, %d failed in %.2fms",
            index + 1,
            len(batches),
            result.succeeded,
            result.failed,
            result.duration_ms,
        )
        if progress:
            await progress(index + 1, len(batches))
        if index < len(batches) - 1 and inter_batch_delay_sec > 0:
            await sleep(inter_batch_delay_sec)
    total_ms = round((time.perf_counter() - started) * 1000.0, 2)

    final = await asyncio.to_thread(sample)
    report = RunReport(
        name=name,
        initial=initial,
        final=final,
        outcomes=tuple(outcomes),
        batch_count=len(batches),
        total_ms=total_ms,
    )
    _log_report(report)
    return report


def _log_report(report: RunReport) -> None:
    logger.info(
        "%s results: %d successful, %d failed, total %.2fms, avg latency %s",
        report.name,
        report.succeeded,
        report.failed,
        report.total_ms,
        "n/a" if report.avg_latency_ms is None else f"{report.avg_latency_ms:.2f}ms",
    )
    for label, before, after in (
        ("RSS", report.initial.rss_mb, report.final.rss_mb),
        ("Heap total", report.initial.heap_total_mb, report.final.heap_total_mb),
    ):
        if before is None or after is None:
            logger.info("  %s: unavailable", label)
            continue
        logger.info("  %s: %s MB -> %s MB (%+.2f MB)", label, before, after, after - before)
