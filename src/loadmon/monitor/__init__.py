from __future__ import annotations

from loadmon.monitor.runner import PerformanceMonitor
from loadmon.monitor.server import (
    ServerProcess,
    ServerState,
    ServerStateError,
    wait_until_listening,
)

__all__ = [
    "PerformanceMonitor",
    "ServerProcess",
    "ServerState",
    "ServerStateError",
    "wait_until_listening",
]
