from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from loadmon.inspect import NoListenerFound

logger = logging.getLogger(__name__)

PopenFactory = Callable[..., Any]
GroupSignaller = Callable[[int, int], None]


class ServerState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


class ServerStateError(RuntimeError):
    pass


class ServerProcess:
    """A child service process that is stopped with SIGTERM, then SIGKILL.

    The child leads its own process group, and both signals go to the whole
    group so that processes it spawned (``npx`` -> ``node``) go down with it.
    The grace window between the two signals is ``grace_sec``.
    """

    def __init__(
        self,
        command: Sequence[str],
        grace_sec: float = 5.0,
        cwd: str | None = None,
        popen: PopenFactory = subprocess.Popen,
        killpg: GroupSignaller = os.killpg,
    ) -> None:
        if not command:
            msg = "Server command must not be empty"
            raise ValueError(msg)
        self.command = list(command)
        self.grace_sec = grace_sec
        self.cwd = cwd
        self._popen = popen
        self._killpg = killpg
        self._proc: Any = None
        self.state = ServerState.NOT_STARTED
        self.forced = False

    @property
    def pid(self) -> int | None:
        return None if self._proc is None else self._proc.pid

    def start(self) -> None:
        if self.state is not ServerState.NOT_STARTED:
            msg = f"Cannot start server in state {self.state.value}"
            raise ServerStateError(msg)
        logger.info("Starting server: %s", " ".join(self.command))
        self._proc = self._popen(
            self.command,
            cwd=self.cwd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        self.state = ServerState.RUNNING

    def stop(self) -> None:
        if self.state in (ServerState.NOT_STARTED, ServerState.TERMINATED):
            return
        if self.state is ServerState.TERMINATING:
            msg = "Server is already terminating"
            raise ServerStateError(msg)
        self.state = ServerState.TERMINATING
        logger.info("Stopping server (pid %s)", self.pid)
        if self._proc.poll() is None:
            self._signal_group(signal.SIGTERM)
            try:
                self._proc.wait(timeout=self.grace_sec)
            except subprocess.TimeoutExpired:
                logger.warning(
                    "Server did not exit within %.1fs, sending SIGKILL", self.grace_sec
                )
                self._signal_group(signal.SIGKILL)
                self._proc.wait()
                self.forced = True
        self.state = ServerState.TERMINATED
        logger.info("Server stopped with exit code %s", self._proc.returncode)

    def _signal_group(self, sig: signal.Signals) -> None:
        # start_new_session makes the child's pid its process group id
        try:
            self._killpg(self._proc.pid, sig)
        except ProcessLookupError:
            logger.debug("Process group %s already gone", self._proc.pid)

    def __enter__(self) -> ServerProcess:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()


async def wait_until_listening(
    resolve: Callable[[int], int],
    port: int,
    timeout_sec: float,
    poll_sec: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Polls ``resolve`` until something listens on ``port``.

    Only the lookup itself runs in a worker thread; the pauses between polls
    stay on the event loop so cancelling the caller stops polling at once.
    """
    deadline = time.monotonic() + timeout_sec
    while True:
        try:
            return await asyncio.to_thread(resolve, port)
        except NoListenerFound:
            if time.monotonic() >= deadline:
                raise
        await sleep(poll_sec)
