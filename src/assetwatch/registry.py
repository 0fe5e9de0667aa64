"""Extension to handler bindings."""
from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class HandlerKind(str, Enum):
    """Built-in behaviours a file extension can be bound to."""

    TRANSCODE_IMAGE = "transcode_image"
    COMPILE = "compile"
    TRANSCODE_DESCRIPTOR = "transcode_descriptor"


class DuplicateHandlerError(ValueError):
    """Raised when one extension is bound to more than one handler."""

    def __init__(self, extension: str, existing: HandlerKind, new: HandlerKind):
        super().__init__(
            f"Extension '{extension}' is already bound to {existing.value}; refusing to rebind to {new.value}"
        )
        self.extension = extension
        self.existing = existing
        self.new = new


DEFAULT_BINDINGS: Tuple[Tuple[str, HandlerKind], ...] = (
    (".xcf", HandlerKind.TRANSCODE_IMAGE),
    (".info", HandlerKind.TRANSCODE_DESCRIPTOR),
    (".cpp", HandlerKind.COMPILE),
    (".hpp", HandlerKind.COMPILE),
)


def normalize_extension(extension: str) -> str:
    extension = extension.strip()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


class ExtensionRegistry:
    """Immutable lookup table from file extension to handler kind."""

    def __init__(self, bindings: Iterable[Tuple[str, HandlerKind]] = DEFAULT_BINDINGS):
        table: Dict[str, HandlerKind] = {}
        for raw_extension, kind in bindings:
            extension = normalize_extension(raw_extension)
            if not extension:
                raise ValueError("Handler bindings require a non-empty extension")
            existing = table.get(extension)
            if existing is not None:
                raise DuplicateHandlerError(extension, existing, kind)
            table[extension] = kind
            logger.debug("Bound %s -> %s", extension, kind.value)
        self._table: Mapping[str, HandlerKind] = MappingProxyType(table)

    def lookup(self, extension: str) -> Optional[HandlerKind]:
        return self._table.get(extension)

    def extensions(self) -> List[str]:
        return list(self._table)

    def __contains__(self, extension: object) -> bool:
        return extension in self._table

    def __len__(self) -> int:
        return len(self._table)
