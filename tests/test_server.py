from __future__ import annotations

import asyncio
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from loadmon.inspect import NoListenerFound
from loadmon.monitor import ServerProcess, ServerState, ServerStateError, wait_until_listening


def test_graceful_stop(popen_factory, killpg) -> None:
    server = ServerProcess(["npx", "next", "start"], popen=popen_factory(), killpg=killpg)
    assert server.state is ServerState.NOT_STARTED
    server.start()
    assert server.state is ServerState.RUNNING
    assert server.pid == 31337
    proc = server._proc
    assert proc.kwargs["start_new_session"] is True

    server.stop()
    assert server.state is ServerState.TERMINATED
    assert proc.signals == ["SIGTERM"]
    assert proc.wait_timeouts == [5.0]
    assert not server.forced


def test_escalates_to_kill_after_grace_window(popen_factory, killpg) -> None:
    server = ServerProcess(
        ["node", "server.js"], grace_sec=5.0, popen=popen_factory(stubborn=True), killpg=killpg
    )
    server.start()
    proc = server._proc
    server.stop()
    assert proc.signals == ["SIGTERM", "SIGKILL"]
    assert proc.wait_timeouts == [5.0, None]
    assert server.forced
    assert server.state is ServerState.TERMINATED


def test_signals_go_to_the_process_group(popen_factory) -> None:
    sent: list[tuple[int, int]] = []
    server = ServerProcess(["node", "server.js"], popen=popen_factory(stubborn=True))

    def record(pgid: int, sig: int) -> None:
        sent.append((pgid, sig))
        if sig == signal.SIGKILL:
            server._proc.returncode = -9

    server._killpg = record
    server.start()
    server.stop()
    assert sent == [(31337, signal.SIGTERM), (31337, signal.SIGKILL)]
    assert server._proc.signals == []


def test_vanished_group_is_not_an_error(popen_factory) -> None:
    def gone(pgid: int, sig: int) -> None:
        raise ProcessLookupError(pgid)

    server = ServerProcess(["node", "server.js"], popen=popen_factory(), killpg=gone)
    server.start()
    server._proc.wait = lambda timeout=None: 0
    server.stop()
    assert server.state is ServerState.TERMINATED


def test_already_exited_process_is_not_signalled(popen_factory, killpg) -> None:
    server = ServerProcess(["node", "server.js"], popen=popen_factory(), killpg=killpg)
    server.start()
    server._proc.returncode = 1
    server.stop()
    assert server._proc.signals == []
    assert server.state is ServerState.TERMINATED


def test_invalid_transitions(popen_factory, killpg) -> None:
    server = ServerProcess(["node", "server.js"], popen=popen_factory(), killpg=killpg)
    server.stop()
    assert server.state is ServerState.NOT_STARTED
    with server:
        with pytest.raises(ServerStateError):
            server.start()
    assert server.state is ServerState.TERMINATED
    server.stop()
    with pytest.raises(ServerStateError):
        server.start()


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        ServerProcess([])


def _is_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    # an unreaped zombie still answers signal 0
    stat = subprocess.run(["ps", "-o", "stat=", "-p", str(pid)], capture_output=True, text=True)
    return bool(stat.stdout.strip()) and not stat.stdout.strip().startswith("Z")


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX process groups")
def test_stop_takes_down_grandchildren(tmp_path: Path) -> None:
    pid_file = tmp_path / "grandchild.pid"
    server = ServerProcess(
        ["sh", "-c", f"sleep 300 & echo $! > {pid_file}; wait"], grace_sec=1.0
    )
    server.start()
    deadline = time.monotonic() + 5
    while not pid_file.exists() or not pid_file.read_text().strip():
        assert time.monotonic() < deadline
        time.sleep(0.05)
    grandchild = int(pid_file.read_text())
    assert _is_running(grandchild)

    server.stop()
    assert server.state is ServerState.TERMINATED
    deadline = time.monotonic() + 5
    while _is_running(grandchild) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not _is_running(grandchild)


def test_wait_until_listening_polls_until_resolved() -> None:
    attempts = []

    def resolve(port: int) -> int:
        attempts.append(port)
        if len(attempts) < 3:
            raise NoListenerFound(port)
        return 777

    sleeps: list[float] = []

    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    pid = asyncio.run(
        wait_until_listening(resolve, 3001, timeout_sec=60, poll_sec=0.25, sleep=sleep)
    )
    assert pid == 777
    assert sleeps == [0.25, 0.25]


def test_wait_until_listening_gives_up() -> None:
    def resolve(port: int) -> int:
        raise NoListenerFound(port)

    async def sleep(seconds: float) -> None:
        return None

    with pytest.raises(NoListenerFound):
        asyncio.run(wait_until_listening(resolve, 3001, timeout_sec=0, sleep=sleep))


def test_cancelled_wait_stops_polling() -> None:
    attempts: list[int] = []

    def resolve(port: int) -> int:
        attempts.append(port)
        raise NoListenerFound(port)

    async def go() -> int:
        task = asyncio.create_task(
            wait_until_listening(resolve, 3001, timeout_sec=30, poll_sec=0.01)
        )
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        polled = len(attempts)
        await asyncio.sleep(0.1)
        return polled

    started = time.monotonic()
    polled = asyncio.run(go())
    assert time.monotonic() - started < 5
    assert len(attempts) <= polled + 1
