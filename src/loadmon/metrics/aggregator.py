from __future__ import annotations

from typing import Sequence

import numpy as np

from loadmon.metrics.models import (
    GlobalMemoryUsage,
    PerfTestResult,
    PerfTestSummary,
    ResourceSnapshot,
    metric_delta,
)


def summarize_results(
    results: Sequence[PerfTestResult],
    initial: ResourceSnapshot,
    final: ResourceSnapshot,
    high_memory_threshold_mb: float,
    test_timestamp: str,
) -> PerfTestSummary:
    valid = [r for r in results if r.ok]
    load_times = [r.load_time_ms for r in valid]
    sizes = [r.content_size or 0 for r in valid]
    heap_deltas = [
        r.memory_delta.heap_used
        for r in valid
        if r.memory_delta is not None and r.memory_delta.heap_used is not None
    ]
    cpu_readings = [
        cpu for cpu in (r.after.process_cpu for r in valid) if cpu is not None and cpu > 0
    ]
    heaps = [r.after.heap_mb for r in valid if r.after.heap_mb is not None]

    initial_heap = initial.heap_mb
    final_heap = final.heap_mb
    peak_heap = float(max(heaps)) if heaps else None
    peak_increase = metric_delta(initial_heap, peak_heap)
    global_memory = GlobalMemoryUsage(
        initial_heap_mb=initial_heap,
        final_heap_mb=final_heap,
        peak_heap_mb=peak_heap,
        avg_heap_per_item_mb=_mean(heaps),
        heap_growth_mb=metric_delta(initial_heap, final_heap),
        peak_increase_mb=peak_increase,
        high_memory=peak_increase is not None and peak_increase > high_memory_threshold_mb,
    )
    return PerfTestSummary(
        total_items=len({r.item_id for r in valid}),
        total_runs=len(valid),
        failed_runs=len(results) - len(valid),
        avg_load_time_ms=_mean(load_times),
        min_load_time_ms=float(min(load_times)) if load_times else None,
        max_load_time_ms=float(max(load_times)) if load_times else None,
        avg_content_size=_mean(sizes),
        total_memory_delta_mb=round(float(np.sum(heap_deltas)), 2) if heap_deltas else 0.0,
        avg_cpu_percent=_mean(cpu_readings) or 0.0,
        global_memory=global_memory,
        test_timestamp=test_timestamp,
    )


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return round(float(np.mean(values)), 2)
