from __future__ import annotations

from loadmon.inspect.base import NoListenerFound, ProcessInspector
from loadmon.inspect.os_inspector import OsProcessInspector, system_cpu_percent
from loadmon.inspect.sampler import ResourceSampler

__all__ = [
    "NoListenerFound",
    "OsProcessInspector",
    "ProcessInspector",
    "ResourceSampler",
    "system_cpu_percent",
]
