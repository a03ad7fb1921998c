from __future__ import annotations

from loadmon.analysis.compare import (
    ComparisonResult,
    LatencyVerdict,
    MemoryVerdict,
    classify_latency,
    classify_memory,
    compare_reports,
    latency_delta_pct,
    run_comparison,
)
from loadmon.analysis.stats import LatencyProfile, latency_profile, outcomes_frame, per_batch

__all__ = [
    "ComparisonResult",
    "LatencyProfile",
    "LatencyVerdict",
    "MemoryVerdict",
    "classify_latency",
    "classify_memory",
    "compare_reports",
    "latency_delta_pct",
    "latency_profile",
    "outcomes_frame",
    "per_batch",
    "run_comparison",
]
