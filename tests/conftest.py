from __future__ import annotations

import signal
import subprocess
from typing import Callable, Sequence

import pytest

from loadmon.inspect import NoListenerFound
from loadmon.metrics import CpuScope, RequestOutcome, ResourceSnapshot, RunReport


def _pick(values: Sequence[float], index: int, default: float) -> float:
    if not values:
        return default
    return values[min(index, len(values) - 1)]


class FakeInspector:
    """Serves scripted readings; the n-th ``sample`` call gets the n-th value."""

    def __init__(
        self,
        pid: int | None = 4242,
        rss: Sequence[float] = (),
        heap_total: Sequence[float] = (),
        cpu: float = 12.5,
        cores: Sequence[float] = (10.0, 20.0, 30.0, 40.0),
    ) -> None:
        self.pid = pid
        self.rss = list(rss)
        self.heap_total = list(heap_total)
        self.cpu = cpu
        self.cores = tuple(cores)
        self.resolved = 0
        self.sampled = 0

    def resolve_listener(self, port: int) -> int:
        self.resolved += 1
        if self.pid is None:
            raise NoListenerFound(port)
        return self.pid

    def sample(self, pid: int) -> ResourceSnapshot:
        index = self.sampled
        self.sampled += 1
        return ResourceSnapshot(
            pid=pid,
            rss_mb=_pick(self.rss, index, 100.0),
            heap_total_mb=_pick(self.heap_total, index, 1000.0),
            cpu_percent=(self.cpu,),
            cpu_scope=CpuScope.PROCESS,
            taken_at=float(index),
        )

    def system_cpu(self) -> tuple[float, ...]:
        return self.cores


class FakePopen:
    """Stands in for ``subprocess.Popen``; ``stubborn`` ignores SIGTERM."""

    instances: list[FakePopen] = []

    def __init__(self, args: Sequence[str], stubborn: bool = False, **kwargs: object) -> None:
        self.args = list(args)
        self.kwargs = kwargs
        self.pid = 31337
        self.returncode: int | None = None
        self.stubborn = stubborn
        self.signals: list[str] = []
        self.wait_timeouts: list[float | None] = []
        FakePopen.instances.append(self)

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.signals.append("SIGTERM")
        if not self.stubborn:
            self.returncode = -15

    def kill(self) -> None:
        self.signals.append("SIGKILL")
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        self.wait_timeouts.append(timeout)
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout or 0)
        return self.returncode


def fake_killpg(pgid: int, sig: int) -> None:
    """Delivers a group signal to the ``FakePopen`` leading that group."""
    for proc in FakePopen.instances:
        if proc.pid == pgid and proc.returncode is None:
            if sig == signal.SIGKILL:
                proc.kill()
            else:
                proc.terminate()
            return
    raise ProcessLookupError(pgid)


@pytest.fixture
def killpg() -> Callable[[int, int], None]:
    return fake_killpg


@pytest.fixture
def inspector_factory() -> type[FakeInspector]:
    return FakeInspector


@pytest.fixture
def popen_factory() -> Callable[..., Callable[..., FakePopen]]:
    FakePopen.instances = []

    def factory(stubborn: bool = False) -> Callable[..., FakePopen]:
        def popen(args: Sequence[str], **kwargs: object) -> FakePopen:
            return FakePopen(args, stubborn=stubborn, **kwargs)

        return popen

    return factory


@pytest.fixture
def snapshot_factory() -> Callable[..., ResourceSnapshot]:
    def make(
        rss: float | None = 100.0,
        heap_total: float | None = 1000.0,
        cpu: float = 5.0,
        heap_used: float | None = None,
    ) -> ResourceSnapshot:
        return ResourceSnapshot(
            pid=4242,
            rss_mb=rss,
            heap_total_mb=heap_total,
            cpu_percent=(cpu,),
            cpu_scope=CpuScope.PROCESS,
            taken_at=0.0,
            heap_used_mb=heap_used,
        )

    return make


@pytest.fixture
def report_factory(
    snapshot_factory: Callable[..., ResourceSnapshot],
) -> Callable[..., RunReport]:
    def make(
        name: str,
        latencies: Sequence[float],
        heap_before: float | None = 1000.0,
        heap_after: float | None = 1000.0,
        urls: Sequence[str] | None = None,
    ) -> RunReport:
        urls = urls or [f"http://svc/item/{i}" for i in range(len(latencies))]
        outcomes = tuple(
            RequestOutcome(url=url, status_code=200, latency_ms=latency, bytes_received=10)
            for url, latency in zip(urls, latencies)
        )
        return RunReport(
            name=name,
            initial=snapshot_factory(heap_total=heap_before),
            final=snapshot_factory(heap_total=heap_after),
            outcomes=outcomes,
            batch_count=1,
            total_ms=sum(latencies),
        )

    return make
