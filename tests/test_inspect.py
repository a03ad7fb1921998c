from __future__ import annotations

import subprocess
from collections import namedtuple

import pytest

from loadmon.inspect import NoListenerFound, OsProcessInspector, ResourceSampler
from loadmon.inspect import os_inspector
from loadmon.metrics import CpuScope

scputimes = namedtuple("scputimes", ["user", "system", "idle"])


def _fake_run(outputs: dict[str, tuple[int, str]]):
    calls: list[list[str]] = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        key = cmd[-1] if cmd[0] == "ps" else cmd[0]
        code, out = outputs.get(key, (1, ""))
        return subprocess.CompletedProcess(cmd, code, stdout=out, stderr="")

    return run, calls


def test_resolver_picks_last_listener(monkeypatch: pytest.MonkeyPatch) -> None:
    run, calls = _fake_run({"lsof": (0, "1200\n1305\n")})
    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    inspector = OsProcessInspector()
    assert inspector.resolve_listener(3000) == 1305
    assert inspector.resolve_listener(3000) == 1305
    assert calls[0] == ["lsof", "-t", "-iTCP:3000", "-sTCP:LISTEN"]


def test_resolver_raises_when_nothing_listens(monkeypatch: pytest.MonkeyPatch) -> None:
    run, _ = _fake_run({"lsof": (1, "")})
    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    with pytest.raises(NoListenerFound) as excinfo:
        OsProcessInspector().resolve_listener(3000)
    assert excinfo.value.port == 3000


def test_resolver_raises_when_lsof_is_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    def run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    with pytest.raises(NoListenerFound):
        OsProcessInspector().resolve_listener(3000)


def test_sample_converts_kilobytes_to_megabytes(monkeypatch: pytest.MonkeyPatch) -> None:
    run, calls = _fake_run({"vsz=": (0, "  204800 1048576\n"), "%cpu=": (0, " 37.5\n")})
    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    snapshot = OsProcessInspector().sample(1305)
    assert snapshot.pid == 1305
    assert snapshot.rss_mb == 200.0
    assert snapshot.heap_total_mb == 1024.0
    assert snapshot.heap_used_mb is None
    assert snapshot.cpu_scope is CpuScope.PROCESS
    assert snapshot.cpu_percent == (37.5,)
    assert calls[0] == ["ps", "-p", "1305", "-o", "rss=", "-o", "vsz="]


def test_sample_falls_back_to_per_core_cpu(monkeypatch: pytest.MonkeyPatch) -> None:
    run, _ = _fake_run({"vsz=": (0, "1536 4096\n")})
    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    monkeypatch.setattr(
        os_inspector.psutil,
        "cpu_times",
        lambda percpu: [scputimes(30.0, 20.0, 50.0), scputimes(0.0, 1.0, 2.0)],
    )
    snapshot = OsProcessInspector().sample(1305)
    assert snapshot.rss_mb == 1.5
    assert snapshot.cpu_scope is CpuScope.SYSTEM
    assert snapshot.cpu_percent == (50.0, 33.33)
    assert snapshot.process_cpu is None


def test_sample_of_gone_process_has_no_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    run, _ = _fake_run({})
    monkeypatch.setattr(os_inspector.subprocess, "run", run)
    monkeypatch.setattr(os_inspector.psutil, "cpu_times", lambda percpu: [scputimes(1.0, 1.0, 2.0)])
    snapshot = OsProcessInspector().sample(99999)
    assert snapshot.rss_mb is None
    assert snapshot.heap_total_mb is None
    assert snapshot.cpu_percent == (50.0,)


def test_sampler_without_listener_uses_system_cpu(inspector_factory) -> None:
    inspector = inspector_factory(pid=None, cores=(5.0, 15.0))
    snapshot = ResourceSampler(inspector, port=3000).snapshot()
    assert snapshot.pid is None
    assert snapshot.rss_mb is None
    assert snapshot.cpu_scope is CpuScope.SYSTEM
    assert snapshot.cpu_percent == (5.0, 15.0)
    assert inspector.sampled == 0


def test_sampler_resolves_then_samples(inspector_factory) -> None:
    inspector = inspector_factory(rss=[120.0])
    snapshot = ResourceSampler(inspector, port=3000).snapshot()
    assert snapshot.pid == 4242
    assert snapshot.rss_mb == 120.0
    assert inspector.resolved == 1
