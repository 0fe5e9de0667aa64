"""Single-shot asynchronous wrapper around external commands."""
from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

logger = logging.getLogger(__name__)

MISSING_COMMAND_EXIT = 127


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one external command invocation."""

    command: str
    args: Sequence[str] = field(default_factory=tuple)
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.stderr

    @property
    def command_line(self) -> str:
        return shlex.join([self.command, *self.args])


ToolRunner = Callable[[str, Sequence[str], Optional[Path]], Awaitable[ToolResult]]


async def run_tool(command: str, args: Sequence[str] = (), cwd: Optional[Path] = None) -> ToolResult:
    """Run ``command`` with ``args`` and capture its output.

    Nothing is retried and nothing is raised for a failing command: the
    caller inspects the returned :class:`ToolResult`.
    """

    args = tuple(str(arg) for arg in args)
    logger.debug("Running %s (cwd=%s)", shlex.join([command, *args]), cwd or ".")
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return ToolResult(command=command, args=args, exit_code=MISSING_COMMAND_EXIT, stderr=str(exc))

    stdout, stderr = await process.communicate()
    return ToolResult(
        command=command,
        args=args,
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


def log_failure(result: ToolResult, what: str) -> None:
    """Report a failed or noisy invocation."""

    if result.exit_code != 0:
        logger.error("%s failed (exit %s): %s", what, result.exit_code, result.command_line)
    else:
        logger.error("%s wrote to stderr: %s", what, result.command_line)
    if result.stderr:
        logger.error("%s", result.stderr.rstrip())
