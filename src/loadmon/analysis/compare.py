from __future__ import annotations

import asyncio
import gc
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Sequence

from loadmon.config import ComparisonThresholds
from loadmon.metrics import RunReport

logger = logging.getLogger(__name__)

RunFn = Callable[[str, Sequence[str]], Awaitable[RunReport]]


class MemoryVerdict(str, Enum):
    LEAK_SUSPECTED = "leak-suspected"
    GOOD_CACHING = "good-caching"
    CONSISTENT = "consistent"
    UNAVAILABLE = "unavailable"


class LatencyVerdict(str, Enum):
    CACHE_EFFECTIVE = "cache effective"
    DEGRADATION = "performance degradation"
    SIMILAR = "similar performance"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    cold: RunReport
    warm: RunReport
    cold_memory_delta_mb: float | None
    warm_memory_delta_mb: float | None
    latency_delta_pct: float | None
    memory_verdict: MemoryVerdict
    latency_verdict: LatencyVerdict


def classify_memory(
    cold_delta: float | None,
    warm_delta: float | None,
    thresholds: ComparisonThresholds = ComparisonThresholds(),
) -> MemoryVerdict:
    if cold_delta is None or warm_delta is None:
        return MemoryVerdict.UNAVAILABLE
    if warm_delta > cold_delta * thresholds.leak_ratio:
        return MemoryVerdict.LEAK_SUSPECTED
    if warm_delta < cold_delta * thresholds.caching_ratio:
        return MemoryVerdict.GOOD_CACHING
    return MemoryVerdict.CONSISTENT


def latency_delta_pct(cold_avg: float | None, warm_avg: float | None) -> float | None:
    if cold_avg is None or warm_avg is None or cold_avg == 0:
        return None
    return (cold_avg - warm_avg) / cold_avg * 100


def classify_latency(
    delta_pct: float | None,
    thresholds: ComparisonThresholds = ComparisonThresholds(),
) -> LatencyVerdict:
    if delta_pct is None:
        return LatencyVerdict.UNAVAILABLE
    if delta_pct > thresholds.latency_pct:
        return LatencyVerdict.CACHE_EFFECTIVE
    if delta_pct < -thresholds.latency_pct:
        return LatencyVerdict.DEGRADATION
    return LatencyVerdict.SIMILAR


def compare_reports(
    cold: RunReport,
    warm: RunReport,
    thresholds: ComparisonThresholds = ComparisonThresholds(),
) -> ComparisonResult:
    if cold.urls != warm.urls:
        msg = "Cold and warm runs must replay the same ordered URL sequence"
        raise ValueError(msg)
    cold_delta = cold.memory_delta_mb
    warm_delta = warm.memory_delta_mb
    pct = latency_delta_pct(cold.avg_latency_ms, warm.avg_latency_ms)
    return ComparisonResult(
        cold=cold,
        warm=warm,
        cold_memory_delta_mb=cold_delta,
        warm_memory_delta_mb=warm_delta,
        latency_delta_pct=pct,
        memory_verdict=classify_memory(cold_delta, warm_delta, thresholds),
        latency_verdict=classify_latency(pct, thresholds),
    )


async def run_comparison(
    urls: Sequence[str],
    run: RunFn,
    settle_sec: float = 5.0,
    collect_garbage: bool = True,
    thresholds: ComparisonThresholds = ComparisonThresholds(),
) -> ComparisonResult:
    cold = await run("cold", urls)
    logger.info("Waiting %.1fs before the warm run", settle_sec)
    if settle_sec > 0:
        await asyncio.sleep(settle_sec)
    if collect_garbage:
        collected = gc.collect()
        logger.debug("Garbage collection freed %d objects", collected)
    warm = await run("warm", urls)
    result = compare_reports(cold, warm, thresholds)
    log_comparison(result)
    return result


def log_comparison(result: ComparisonResult) -> None:
    logger.info("Memory analysis:")
    logger.info("  Cold run memory change: %s", _signed(result.cold_memory_delta_mb, "MB"))
    logger.info("  Warm run memory change: %s", _signed(result.warm_memory_delta_mb, "MB"))
    logger.info("  Verdict: %s", result.memory_verdict.value)
    logger.info("Performance comparison:")
    logger.info("  Cold run average: %s", _avg(result.cold.avg_latency_ms))
    logger.info("  Warm run average: %s", _avg(result.warm.avg_latency_ms))
    logger.info(
        "  Verdict: %s (%s)",
        result.latency_verdict.value,
        _signed(result.latency_delta_pct, "% faster"),
    )


def _signed(value: float | None, unit: str) -> str:
    if value is None:
        return "n/a"
    return f"{value:+.2f} {unit}"


def _avg(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f}ms per request"
