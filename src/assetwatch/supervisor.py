"""Single-slot supervision of the application under development."""
from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from rich.console import Console
from rich.text import Text

logger = logging.getLogger(__name__)

STDOUT_PREFIX = "main-stdout:"
STDERR_PREFIX = "main-stderr:"

Spawner = Callable[[str, Sequence[str], Optional[Path]], Awaitable[Any]]


class SupervisorError(RuntimeError):
    """Raised when the supervisor is driven against its contract."""


class SupervisorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RunningProcess:
    """The live application process and when it was started."""

    handle: Any
    started_at: datetime

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.handle, "pid", None)


async def spawn_process(command: str, args: Sequence[str], cwd: Optional[Path]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


class ProcessSupervisor:
    """Owns the single "currently running application" slot.

    All mutation goes through :meth:`start`, :meth:`supersede` and
    :meth:`shutdown`. The old process is signalled before its replacement is
    spawned, but its exit is not awaited. A process that exits on its own
    stays tracked, so the project still counts as having been run.
    """

    def __init__(
        self,
        *,
        cwd: Optional[Path] = None,
        spawner: Spawner = spawn_process,
        console: Optional[Console] = None,
    ):
        self._cwd = cwd
        self._spawner = spawner
        self._console = console or Console(highlight=False, soft_wrap=True)
        self._state = SupervisorState.IDLE
        self._current: Optional[RunningProcess] = None
        self._forwarder: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SupervisorState.RUNNING

    @property
    def current(self) -> Optional[RunningProcess]:
        return self._current

    async def start(self, command: str, args: Sequence[str] = ()) -> RunningProcess:
        async with self._lock:
            return await self._start_locked(command, args)

    async def supersede(self, command: str, args: Sequence[str] = ()) -> RunningProcess:
        async with self._lock:
            if self._state is SupervisorState.RUNNING:
                logger.info("Stopping previous run (pid %s)", self._current.pid if self._current else "?")
                self._release()
            return await self._start_locked(command, args)

    def shutdown(self) -> None:
        if self._state is SupervisorState.STOPPED:
            return
        if self._state is SupervisorState.RUNNING:
            self._release()
        self._state = SupervisorState.STOPPED
        logger.debug("Supervisor stopped")

    async def _start_locked(self, command: str, args: Sequence[str]) -> RunningProcess:
        if self._state is not SupervisorState.IDLE:
            raise SupervisorError(f"Cannot start {command!r} while supervisor is {self._state.value}")

        args = [str(arg) for arg in args]
        handle = await self._spawner(command, args, self._cwd)
        if self._state is SupervisorState.STOPPED:
            # shutdown() ran while the spawn was in flight
            handle.terminate()
            raise SupervisorError(f"Supervisor stopped while starting {command!r}")
        running = RunningProcess(handle=handle, started_at=datetime.now())
        self._current = running
        self._state = SupervisorState.RUNNING
        self._forwarder = asyncio.create_task(self._forward(running))
        logger.info("Started %s (pid %s)", shlex.join([command, *args]), running.pid)
        return running

    def _release(self) -> None:
        """Signal the current process and detach its output."""

        running = self._current
        if running is not None:
            try:
                running.handle.terminate()
            except ProcessLookupError:
                logger.debug("Process %s already exited", running.pid)
        if self._forwarder is not None:
            self._forwarder.cancel()
        self._current = None
        self._forwarder = None
        self._state = SupervisorState.IDLE

    async def _forward(self, running: RunningProcess) -> None:
        handle = running.handle
        streams = []
        if getattr(handle, "stdout", None) is not None:
            streams.append(self._pump(handle.stdout, STDOUT_PREFIX, ""))
        if getattr(handle, "stderr", None) is not None:
            streams.append(self._pump(handle.stderr, STDERR_PREFIX, "bold red"))
        await asyncio.gather(*streams)

        returncode = await handle.wait()
        # the slot stays occupied until supersede or shutdown
        logger.info("Process %s exited with code %s", running.pid, returncode)

    async def _pump(self, stream: asyncio.StreamReader, prefix: str, style: str) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode(errors="replace").rstrip("\r\n")
            self._console.print(Text.assemble((prefix, style), " ", text))
