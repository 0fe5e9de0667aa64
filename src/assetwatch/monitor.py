"""Directory watching and change dispatch on a single event loop."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .events import EventKind, FileChangeEvent
from .handlers import HANDLERS, HandlerContext
from .registry import ExtensionRegistry
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Tuple[float, int]]
NotificationCallback = Callable[[Path, str, Optional[str]], None]
ContextFactory = Callable[[Path], HandlerContext]


@dataclass
class DispatchStats:
    """Counters emitted by the dispatcher on shutdown."""

    notifications: int = 0
    dispatched: int = 0
    dropped: int = 0


class DirectoryPoller:
    """Polls one directory and reports raw ``(kind, filename)`` notifications.

    The scan is not recursive. Several writes to a file within one poll
    interval are reported as a single ``change``.
    """

    def __init__(self, directory: Path, callback: NotificationCallback, *, poll_interval: float = 0.5):
        self.directory = directory
        self._callback = callback
        self._poll_interval = poll_interval
        self._snapshot: Snapshot = {}
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        try:
            self._snapshot = self.scan()
        except OSError as exc:
            logger.warning("Could not scan %s: %s", self.directory, exc)
            self._snapshot = {}
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.directory}")
        logger.info("Listening for changes to \"%s\"", self.directory)

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def poll(self) -> None:
        """Scan once and report differences against the previous snapshot."""

        new_snapshot = self.scan()
        for kind, filename in _diff_snapshots(self._snapshot, new_snapshot):
            self._callback(self.directory, kind, filename)
        self._snapshot = new_snapshot

    def scan(self) -> Snapshot:
        if not self.directory.exists():
            logger.warning("Directory %s does not exist yet; skipping scan", self.directory)
            return {}
        results: Snapshot = {}
        for path in self.directory.iterdir():
            try:
                if not path.is_file():
                    continue
                stat = path.stat()
            except FileNotFoundError:
                continue
            results[path.name] = (stat.st_mtime, stat.st_size)
        return results

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                self.poll()
            except OSError as exc:
                logger.warning("Could not scan %s: %s", self.directory, exc)


def _diff_snapshots(old: Snapshot, new: Snapshot) -> Iterable[Tuple[str, str]]:
    seen: Set[str] = set()

    for name, (mtime, size) in new.items():
        if name not in old:
            # a new file is also reported as written, like fs.watch does
            yield EventKind.RENAMED.value, name
            yield EventKind.MODIFIED.value, name
        else:
            old_mtime, old_size = old[name]
            if old_mtime != mtime or old_size != size:
                yield EventKind.MODIFIED.value, name
        seen.add(name)

    for name in old:
        if name not in seen:
            yield EventKind.RENAMED.value, name


class ChangeDispatcher:
    """Turns raw notifications into handler tasks."""

    def __init__(
        self,
        directories: Iterable[Path],
        registry: ExtensionRegistry,
        supervisor: ProcessSupervisor,
        context_factory: ContextFactory,
        *,
        poll_interval: float = 0.5,
    ):
        self._directories: List[Path] = list(directories)
        self._registry = registry
        self._supervisor = supervisor
        self._context_factory = context_factory
        self._poll_interval = poll_interval
        self._pollers: List[DirectoryPoller] = []
        self._tasks: Set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self.stats = DispatchStats()

    def handle_notification(self, directory: Path, kind: str, filename: Optional[str]) -> Optional[asyncio.Task]:
        """Dispatch one raw notification; returns the handler task if any."""

        self.stats.notifications += 1
        if not filename:
            logger.warning("No filename provided for %s notification in %s; dropping", kind, directory)
            self.stats.dropped += 1
            return None

        event_kind = EventKind.from_raw(kind)
        if event_kind is None:
            logger.debug("Unknown notification kind %r for %s", kind, filename)
            self.stats.dropped += 1
            return None
        if event_kind is EventKind.RENAMED:
            # file added or removed; nothing is wired to this
            return None

        event = FileChangeEvent.build(event_kind, filename, directory)
        handler_kind = self._registry.lookup(event.extension)
        if handler_kind is None:
            logger.debug("No handler for %s", event.filename)
            return None

        handler = HANDLERS[handler_kind]
        context = self._context_factory(directory)
        task = asyncio.create_task(handler(event, context), name=f"{handler_kind.value}:{event.filename}")
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._task_finished(done, event))
        self.stats.dispatched += 1
        return task

    async def drain(self) -> None:
        """Wait for all in-flight handler tasks."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stop(self) -> None:
        """Signal the dispatcher to stop at the next opportunity."""

        self._stop_event.set()

    async def run(self) -> None:
        """Watch every directory until :meth:`stop` is called, then shut down."""

        self._pollers = [
            DirectoryPoller(directory, self.handle_notification, poll_interval=self._poll_interval)
            for directory in self._directories
        ]
        try:
            for poller in self._pollers:
                poller.start()
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        try:
            for poller in self._pollers:
                await poller.close()
            self._pollers = []
            await self.drain()
        finally:
            self._supervisor.shutdown()
        logger.info(
            "Watcher stopped after %s notifications, %s dispatched, %s dropped",
            self.stats.notifications,
            self.stats.dispatched,
            self.stats.dropped,
        )

    def _task_finished(self, task: asyncio.Task, event: FileChangeEvent) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handler failed for %s", event.full_path, exc_info=exc)
