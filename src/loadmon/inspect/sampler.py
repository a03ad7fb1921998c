from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from loadmon.inspect.base import NoListenerFound, ProcessInspector
from loadmon.metrics import CpuScope, ResourceSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResourceSampler:
    """Samples whichever process currently listens on ``port``.

    When nothing listens there the snapshot carries no pid and no memory
    figures, and CPU falls back to the per-core system reading.
    """

    inspector: ProcessInspector
    port: int

    def snapshot(self) -> ResourceSnapshot:
        try:
            pid = self.inspector.resolve_listener(self.port)
        except NoListenerFound as exc:
            logger.warning("%s; sampling system-wide CPU only", exc)
            return ResourceSnapshot(
                pid=None,
                rss_mb=None,
                heap_total_mb=None,
                cpu_percent=self.inspector.system_cpu(),
                cpu_scope=CpuScope.SYSTEM,
                taken_at=time.time(),
            )
        return self.inspector.sample(pid)


def describe(snapshot: ResourceSnapshot) -> str:
    if snapshot.cpu_scope is CpuScope.PROCESS:
        cpu = f"{snapshot.cpu_percent[0]:.1f}%"
    else:
        cores = snapshot.cpu_percent
        avg = sum(cores) / len(cores) if cores else 0.0
        cpu = f"system {avg:.1f}% over {len(cores)} cores"
    return (
        f"pid={snapshot.pid} rss={_mb(snapshot.rss_mb)} "
        f"heap_total={_mb(snapshot.heap_total_mb)} cpu={cpu}"
    )


def _mb(value: float | None) -> str:
    return "n/a" if value is None else f"{value} MB"
