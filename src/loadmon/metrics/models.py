from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorType(str, Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    READ = "read"
    STATUS = "status"
    OTHER = "other"


class CpuScope(str, Enum):
    PROCESS = "process"
    SYSTEM = "system"


def to_mb(kilobytes: float) -> float:
    return round(kilobytes / 1024, 2)


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    url: str
    status_code: int | None
    latency_ms: float
    bytes_received: int
    error_type: ErrorType | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_type is None


@dataclass(frozen=True, slots=True)
class BatchResult:
    index: int
    outcomes: tuple[RequestOutcome, ...]
    duration_ms: float

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


@dataclass(frozen=True, slots=True)
class ResourceSnapshot:
    """One reading of a process's memory and CPU.

    ``cpu_percent`` holds a single value when ``cpu_scope`` is ``PROCESS`` and
    one value per logical core when it fell back to ``SYSTEM``.
    """

    pid: int | None
    rss_mb: float | None
    heap_total_mb: float | None
    cpu_percent: tuple[float, ...]
    cpu_scope: CpuScope
    taken_at: float
    heap_used_mb: float | None = None
    external_mb: float | None = None

    @property
    def heap_mb(self) -> float | None:
        if self.heap_used_mb is not None:
            return self.heap_used_mb
        return self.rss_mb

    @property
    def process_cpu(self) -> float | None:
        if self.cpu_scope is CpuScope.PROCESS and self.cpu_percent:
            return self.cpu_percent[0]
        return None


def metric_delta(before: float | None, after: float | None) -> float | None:
    if before is None or after is None:
        return None
    return round(after - before, 2)


@dataclass(frozen=True, slots=True)
class RunReport:
    name: str
    initial: ResourceSnapshot
    final: ResourceSnapshot
    outcomes: tuple[RequestOutcome, ...]
    batch_count: int
    total_ms: float

    @property
    def urls(self) -> list[str]:
        return [o.url for o in self.outcomes]

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def avg_latency_ms(self) -> float | None:
        latencies = [o.latency_ms for o in self.outcomes if o.ok]
        if not latencies:
            return None
        return sum(latencies) / len(latencies)

    @property
    def avg_wall_ms_per_request(self) -> float | None:
        if not self.outcomes:
            return None
        return self.total_ms / len(self.outcomes)

    @property
    def memory_delta_mb(self) -> float | None:
        return metric_delta(self.initial.heap_total_mb, self.final.heap_total_mb)


@dataclass(frozen=True, slots=True)
class MemoryDelta:
    rss: float | None
    heap_used: float | None


@dataclass(frozen=True, slots=True)
class PerfTestResult:
    item_id: int
    run_number: int
    load_time_ms: float
    content_size: int | None
    before: ResourceSnapshot
    after: ResourceSnapshot
    memory_delta: MemoryDelta | None
    timestamp: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.load_time_ms >= 0 and self.error is None


@dataclass(frozen=True, slots=True)
class GlobalMemoryUsage:
    initial_heap_mb: float | None
    final_heap_mb: float | None
    peak_heap_mb: float | None
    avg_heap_per_item_mb: float | None
    heap_growth_mb: float | None
    peak_increase_mb: float | None
    high_memory: bool


@dataclass(frozen=True, slots=True)
class PerfTestSummary:
    total_items: int
    total_runs: int
    failed_runs: int
    avg_load_time_ms: float | None
    min_load_time_ms: float | None
    max_load_time_ms: float | None
    avg_content_size: float | None
    total_memory_delta_mb: float
    avg_cpu_percent: float
    global_memory: GlobalMemoryUsage
    test_timestamp: str


@dataclass(frozen=True, slots=True)
class PerfReport:
    summary: PerfTestSummary
    results: tuple[PerfTestResult, ...]
