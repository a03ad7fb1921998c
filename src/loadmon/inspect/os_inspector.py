from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass

import psutil

from loadmon.inspect.base import NoListenerFound
from loadmon.metrics import CpuScope, ResourceSnapshot, to_mb

logger = logging.getLogger(__name__)


def system_cpu_percent() -> tuple[float, ...]:
    """Busy percentage per logical core from cumulative idle vs total ticks."""
    readings: list[float] = []
    for times in psutil.cpu_times(percpu=True):
        total = sum(times)
        if total <= 0:
            readings.append(0.0)
            continue
        readings.append(round((1 - times.idle / total) * 100, 2))
    return tuple(readings)


@dataclass(frozen=True, slots=True)
class OsProcessInspector:
    """Inspects processes with ``lsof`` and ``ps``."""

    command_timeout_sec: float = 5.0

    def resolve_listener(self, port: int) -> int:
        lines = self._run(["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"])
        pids = [line for line in lines if line.isdigit()]
        if not pids:
            raise NoListenerFound(port)
        if len(pids) > 1:
            logger.debug("Port %s has %d listeners, using the last one", port, len(pids))
        return int(pids[-1])

    def sample(self, pid: int) -> ResourceSnapshot:
        rss_mb: float | None = None
        vsz_mb: float | None = None
        # one -o per column; BSD ps reads everything after "=" as header text
        memory_row = self._first_row(["ps", "-p", str(pid), "-o", "rss=", "-o", "vsz="])
        if memory_row is not None:
            fields = memory_row.split()
            if len(fields) >= 2:
                rss_mb = to_mb(float(fields[0]))
                vsz_mb = to_mb(float(fields[1]))

        cpu_row = self._first_row(["ps", "-p", str(pid), "-o", "%cpu="])
        if cpu_row is not None:
            cpu: tuple[float, ...] = (float(cpu_row),)
            scope = CpuScope.PROCESS
        else:
            logger.warning("No CPU reading for pid %s, using system-wide CPU", pid)
            cpu = self.system_cpu()
            scope = CpuScope.SYSTEM

        return ResourceSnapshot(
            pid=pid,
            rss_mb=rss_mb,
            heap_total_mb=vsz_mb,
            cpu_percent=cpu,
            cpu_scope=scope,
            taken_at=time.time(),
        )

    def system_cpu(self) -> tuple[float, ...]:
        return system_cpu_percent()

    def _first_row(self, cmd: list[str]) -> str | None:
        lines = self._run(cmd)
        return lines[0] if lines else None

    def _run(self, cmd: list[str]) -> list[str]:
        try:
            proc = subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                timeout=self.command_timeout_sec,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("%s failed: %s", cmd[0], exc)
            return []
        if proc.returncode != 0:
            return []
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]
