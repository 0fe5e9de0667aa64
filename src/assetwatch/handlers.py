"""Handler coroutines bound to file extensions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from . import codec
from .config import CommandConfig
from .events import FileChangeEvent
from .registry import HandlerKind
from .supervisor import ProcessSupervisor
from .tools import ToolRunner, log_failure, run_tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerContext:
    """Shared collaborators passed to every handler invocation."""

    source_directory: Path
    supervisor: ProcessSupervisor
    project_root: Path
    commands: CommandConfig = field(default_factory=CommandConfig)
    fields_per_row: Optional[int] = codec.FIELDS_PER_ROW
    run_tool: ToolRunner = run_tool


Handler = Callable[[FileChangeEvent, HandlerContext], Awaitable[None]]


async def transcode_image(event: FileChangeEvent, context: HandlerContext) -> None:
    """Flatten an image into ``<stem>.png`` and rebuild if an app is running."""

    target = context.source_directory / f"{event.stem}.png"
    logger.info("Transforming %s to png...", event.filename)

    command, *prefix = context.commands.image
    result = await context.run_tool(command, [*prefix, str(event.full_path), str(target)], None)
    if not result.ok:
        log_failure(result, f"Image transcode of {event.filename}")
        return
    logger.info("Finished %s", target.name)

    if context.supervisor.is_running:
        await compile_and_run(event, context)
    else:
        logger.debug("No application running; skipping rebuild")


async def compile_and_run(event: FileChangeEvent, context: HandlerContext) -> None:
    """Build the project and supersede the running application."""

    logger.info("Building after change to %s...", event.filename)
    command, *args = context.commands.build
    result = await context.run_tool(command, args, context.project_root)
    if not result.ok:
        log_failure(result, "Build")
        return
    if result.stdout:
        logger.debug("%s", result.stdout.rstrip())

    run_command, *run_args = context.commands.run
    await context.supervisor.supersede(run_command, run_args)


async def transcode_descriptor(event: FileChangeEvent, context: HandlerContext) -> None:
    """Encode a descriptor file into its binary ``.file`` record."""

    logger.info("Encoding %s...", event.filename)
    try:
        destination = codec.transcode_file(event.full_path, fields_per_row=context.fields_per_row)
    except codec.CodecError as exc:
        logger.error("Could not encode %s: %s", event.full_path, exc)
        return
    except OSError as exc:
        logger.error("Could not read or write %s: %s", event.full_path, exc)
        return
    logger.info("Wrote %s", destination.name)


HANDLERS: Dict[HandlerKind, Handler] = {
    HandlerKind.TRANSCODE_IMAGE: transcode_image,
    HandlerKind.COMPILE: compile_and_run,
    HandlerKind.TRANSCODE_DESCRIPTOR: transcode_descriptor,
}
