from __future__ import annotations

from loadmon.metrics.aggregator import summarize_results
from loadmon.metrics.models import (
    BatchResult,
    CpuScope,
    ErrorType,
    GlobalMemoryUsage,
    MemoryDelta,
    PerfReport,
    PerfTestResult,
    PerfTestSummary,
    RequestOutcome,
    ResourceSnapshot,
    RunReport,
    metric_delta,
    to_mb,
)

__all__ = [
    "BatchResult",
    "CpuScope",
    "ErrorType",
    "GlobalMemoryUsage",
    "MemoryDelta",
    "PerfReport",
    "PerfTestResult",
    "PerfTestSummary",
    "RequestOutcome",
    "ResourceSnapshot",
    "RunReport",
    "metric_delta",
    "summarize_results",
    "to_mb",
]
