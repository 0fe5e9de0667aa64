"""Command-line entry point for the asset watcher."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, ConfigError, load_config
from .handlers import HandlerContext
from .monitor import ChangeDispatcher
from .supervisor import ProcessSupervisor

logger = logging.getLogger("assetwatch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Watch asset directories and rebuild on change")
    parser.add_argument(
        "directories",
        nargs="*",
        help="Directories to watch (default: the current directory)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an optional YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def build_dispatcher(config: AppConfig) -> ChangeDispatcher:
    registry = config.build_registry()
    supervisor = ProcessSupervisor(cwd=config.project_root)

    def context_for(directory: Path) -> HandlerContext:
        return HandlerContext(
            source_directory=directory,
            supervisor=supervisor,
            project_root=config.project_root,
            commands=config.commands,
            fields_per_row=config.fields_per_row,
        )

    logger.info(
        "Currently performing operations on the following filetypes: %s",
        ",".join(registry.extensions()),
    )
    return ChangeDispatcher(
        config.watch.directories,
        registry,
        supervisor,
        context_for,
        poll_interval=config.watch.poll_interval,
    )


async def serve(config: AppConfig) -> None:
    dispatcher = build_dispatcher(config)
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, dispatcher.stop)
    logger.info("Press Control + C to exit.")
    await dispatcher.run()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        config = load_config(Path(args.config)) if args.config else AppConfig()
        config.with_directories(args.directories)
    except ConfigError as exc:
        logging.error("%s", exc)
        return 2

    asyncio.run(serve(config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
