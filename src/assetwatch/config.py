"""Configuration loading utilities for the asset watcher."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

import yaml  # type: ignore

from .codec import FIELDS_PER_ROW
from .registry import DEFAULT_BINDINGS, DuplicateHandlerError, ExtensionRegistry, HandlerKind

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class WatchConfig:
    """Options describing which directories are observed and how often."""

    directories: List[Path] = field(default_factory=list)
    poll_interval: float = 0.5


@dataclass
class CommandConfig:
    """External commands invoked by the handlers, as argv prefixes."""

    image: List[str] = field(default_factory=lambda: ["convert", "-flatten"])
    build: List[str] = field(default_factory=lambda: ["jam"])
    run: List[str] = field(default_factory=lambda: ["./dist/main"])


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    project_root: Path = field(default_factory=Path.cwd)
    commands: CommandConfig = field(default_factory=CommandConfig)
    fields_per_row: Optional[int] = FIELDS_PER_ROW
    bindings: List[Tuple[str, HandlerKind]] = field(default_factory=lambda: list(DEFAULT_BINDINGS))

    def build_registry(self) -> ExtensionRegistry:
        try:
            return ExtensionRegistry(self.bindings)
        except (DuplicateHandlerError, ValueError) as exc:
            raise ConfigError(str(exc)) from exc

    def with_directories(self, directories: Sequence[str], *, base: Optional[Path] = None) -> "AppConfig":
        """Resolve the directories to watch, CLI arguments taking precedence."""

        base = base or Path.cwd()
        if directories:
            resolved = [(base / directory).resolve() for directory in directories]
        elif self.watch.directories:
            resolved = list(self.watch.directories)
        else:
            resolved = [base.resolve()]
        self.watch.directories = resolved
        return self


def load_config(path: Path) -> AppConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    base = path.parent
    config = AppConfig(
        watch=_parse_watch_config(data.get("watch"), base=base),
        project_root=_resolve_path(data.get("project_root", "."), base=base, field_name="project_root"),
        commands=_parse_commands(data.get("commands")),
        fields_per_row=_parse_descriptor(data.get("descriptor")),
    )
    if "handlers" in data:
        config.bindings = _parse_handlers(data["handlers"])
    config.build_registry()
    return config


def _parse_watch_config(raw: Any, *, base: Path) -> WatchConfig:
    if raw is None:
        return WatchConfig()
    if not isinstance(raw, dict):
        raise ConfigError("'watch' section must be a mapping")

    directories = [
        _resolve_path(item, base=base, field_name="watch.directories")
        for item in _ensure_str_list(raw.get("directories", []), "watch.directories")
    ]

    poll_interval = raw.get("poll_interval", 0.5)
    try:
        poll_interval_val = float(poll_interval)
    except (TypeError, ValueError) as exc:
        raise ConfigError("watch.poll_interval must be numeric") from exc
    if poll_interval_val <= 0:
        raise ConfigError("watch.poll_interval must be positive")

    return WatchConfig(directories=directories, poll_interval=poll_interval_val)


def _parse_commands(raw: Any) -> CommandConfig:
    commands = CommandConfig()
    if raw is None:
        return commands
    if not isinstance(raw, dict):
        raise ConfigError("'commands' section must be a mapping")

    for name in ("image", "build", "run"):
        if name not in raw:
            continue
        argv = _ensure_str_list(raw[name], f"commands.{name}")
        if not argv:
            raise ConfigError(f"commands.{name} must not be empty")
        setattr(commands, name, argv)
    return commands


def _parse_descriptor(raw: Any) -> Optional[int]:
    if raw is None:
        return FIELDS_PER_ROW
    if not isinstance(raw, dict):
        raise ConfigError("'descriptor' section must be a mapping")

    value = raw.get("fields_per_row", FIELDS_PER_ROW)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError("descriptor.fields_per_row must be a positive integer or null")
    return value


def _parse_handlers(raw: Any) -> List[Tuple[str, HandlerKind]]:
    if not isinstance(raw, dict):
        raise ConfigError("'handlers' section must be a mapping of extension to handler")

    bindings: List[Tuple[str, HandlerKind]] = []
    for extension, kind_raw in raw.items():
        if not isinstance(extension, str):
            raise ConfigError(f"handlers key {extension!r} must be a string extension")
        try:
            kind = HandlerKind(kind_raw)
        except ValueError as exc:
            allowed = ", ".join(option.value for option in HandlerKind)
            raise ConfigError(f"handlers.{extension} must be one of: {allowed}") from exc
        bindings.append((extension, kind))
        logger.info("Loaded handler binding %s -> %s", extension, kind.value)
    return bindings


def _resolve_path(raw: Any, *, base: Path, field_name: str) -> Path:
    if not isinstance(raw, str):
        raise ConfigError(f"{field_name} must be a string")
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError(f"{field_name} must contain only strings")
        items.append(elem)
    return items
