"""Event models shared across watcher components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class EventKind(str, Enum):
    """Kinds of raw notifications produced by a directory watcher."""

    MODIFIED = "change"
    RENAMED = "rename"  # a file appeared or disappeared

    @classmethod
    def from_raw(cls, raw: str) -> Optional["EventKind"]:
        try:
            return cls(raw)
        except ValueError:
            return None


def split_filename(filename: str) -> Tuple[str, str]:
    """Return ``(stem, extension)`` split at the last ``"."``.

    The extension keeps its leading dot. Names without a dot have an empty
    extension and the whole name as stem.
    """

    index = filename.rfind(".")
    if index == -1:
        return filename, ""
    return filename[:index], filename[index:]


@dataclass(frozen=True)
class FileChangeEvent:
    """A single change observed in one watched directory."""

    kind: EventKind
    filename: str
    extension: str
    stem: str
    full_path: Path
    source_directory: Path

    @classmethod
    def build(cls, kind: EventKind, filename: str, source_directory: Path) -> "FileChangeEvent":
        stem, extension = split_filename(filename)
        return cls(
            kind=kind,
            filename=filename,
            extension=extension,
            stem=stem,
            full_path=source_directory / filename,
            source_directory=source_directory,
        )
