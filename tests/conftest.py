"""Shared fakes for the assetwatch test suite."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pytest
from rich.console import Console

from assetwatch.tools import ToolResult


class FakeProcess:
    """Stands in for asyncio.subprocess.Process without output streams."""

    _next_pid = 1000

    def __init__(self, command: str, args: Sequence[str]):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.command = command
        self.args = list(args)
        self.stdout = None
        self.stderr = None
        self.returncode: Optional[int] = None
        self.terminated = False
        self._exited = asyncio.Event()

    def terminate(self) -> None:
        if self.returncode is not None:
            raise ProcessLookupError(self.pid)
        self.terminated = True
        self.exit(-15)

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    @property
    def alive(self) -> bool:
        return self.returncode is None


class FakeSpawner:
    """Records spawned fake processes."""

    def __init__(self) -> None:
        self.processes: List[FakeProcess] = []
        self.cwds: List[Optional[Path]] = []

    async def __call__(self, command: str, args: Sequence[str], cwd: Optional[Path]) -> FakeProcess:
        process = FakeProcess(command, args)
        self.processes.append(process)
        self.cwds.append(cwd)
        return process

    @property
    def alive(self) -> List[FakeProcess]:
        return [process for process in self.processes if process.alive]


class RecordingToolRunner:
    """Fake tool runner returning canned results per command."""

    def __init__(self, results: Optional[dict] = None) -> None:
        self.calls: List[Tuple[str, List[str], Optional[Path]]] = []
        self._results = results or {}

    async def __call__(self, command: str, args: Sequence[str], cwd: Optional[Path]) -> ToolResult:
        self.calls.append((command, list(args), cwd))
        result = self._results.get(command)
        if result is None:
            return ToolResult(command=command, args=tuple(args))
        return result

    @property
    def commands(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=io.StringIO(), highlight=False, width=200)
