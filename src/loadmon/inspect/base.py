from __future__ import annotations

from typing import Protocol

from loadmon.metrics import ResourceSnapshot


class NoListenerFound(LookupError):
    def __init__(self, port: int) -> None:
        super().__init__(f"No process is listening on TCP port {port}")
        self.port = port


class ProcessInspector(Protocol):
    def resolve_listener(self, port: int) -> int:
        ...

    def sample(self, pid: int) -> ResourceSnapshot:
        ...

    def system_cpu(self) -> tuple[float, ...]:
        ...
