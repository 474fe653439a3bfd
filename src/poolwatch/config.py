"""Configuration — the PoolEngine/PoolEvents/PoolLogs directives.

Configuration is read from a YAML file or a directive file, then
environment overrides are applied. The result is a frozen snapshot that
sessions only read.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import re
import stat
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from poolwatch.errors import ConfigurationError
from poolwatch.events.models import EventSelection
from poolwatch.fs.provision import ensure_directory_tree
from poolwatch.payload import PAYLOAD_NAMES

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR_MODE = 0o755

_TRUE = {"on", "yes", "true", "1"}
_FALSE = {"off", "no", "false", "0"}
_YAML_SUFFIXES = {".yaml", ".yml"}
_LIST_SPLIT = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class PoolWatchConfig:
    """Resolved configuration snapshot."""

    engine: bool = False
    events: EventSelection = field(default_factory=EventSelection.everything)
    log_dir: Path | None = None
    payload: tuple[str, ...] = ("psutil",)

    @classmethod
    def load(cls, path: str | Path | None = None) -> PoolWatchConfig:
        """Load from ``path`` (if given), then apply environment overrides."""
        config = load_config(path) if path is not None else cls()
        return apply_env_overrides(config)


def parse_boolean(value: object) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"expected Boolean parameter, got '{value}'")


def validate_log_dir(value: str | os.PathLike[str]) -> Path:
    """Check a PoolLogs path, creating the directory tree if it is missing."""
    path = Path(value)
    if not path.is_absolute():
        raise ConfigurationError(f"must be an absolute path: {value}")

    try:
        st = path.stat()
    except FileNotFoundError:
        logger.debug("PoolLogs directory '%s' does not exist, creating it", path)
        ensure_directory_tree(path, os.geteuid(), os.getegid(), DEFAULT_LOG_DIR_MODE)
        logger.info("Created PoolLogs directory '%s'", path)
        return path
    except OSError as exc:
        raise ConfigurationError(f"unable to stat '{path}': {exc.strerror}") from exc

    if not stat.S_ISDIR(st.st_mode):
        raise ConfigurationError(f"unable to use '{path}': Not a directory")
    return path


def set_engine(args: Sequence[str]) -> bool:
    """usage: PoolEngine on|off"""
    _check_args(args, 1)
    return parse_boolean(args[0])


def set_events(args: Sequence[str]) -> EventSelection:
    """usage: PoolEvents event1 ..."""
    return EventSelection.from_names(args)


def set_logs(args: Sequence[str]) -> Path:
    """usage: PoolLogs path"""
    _check_args(args, 1)
    return validate_log_dir(args[0])


def set_payload(args: Sequence[str]) -> tuple[str, ...]:
    """usage: PoolPayload producer1 ..."""
    if not args:
        raise ConfigurationError("wrong number of parameters")
    names = tuple(a.lower() for a in args)
    for name in names:
        if name not in PAYLOAD_NAMES:
            raise ConfigurationError(
                f"unknown PoolPayload '{name}' (expected one of: {', '.join(PAYLOAD_NAMES)})"
            )
    return names


_DIRECTIVES = {
    "poolengine": ("engine", set_engine),
    "poolevents": ("events", set_events),
    "poollogs": ("log_dir", set_logs),
    "poolpayload": ("payload", set_payload),
}


def load_config(path: str | Path) -> PoolWatchConfig:
    """Load a YAML (``.yaml``/``.yml``) or directive-style config file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in _YAML_SUFFIXES:
        return load_config_from_string(text)
    return load_directives(text.splitlines())


def load_config_from_string(text: str) -> PoolWatchConfig:
    """Parse YAML with keys ``engine``, ``events``, ``logs``, ``payload``."""
    data = yaml.safe_load(text)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("PoolWatch YAML must be a mapping")

    unknown = set(data) - {"engine", "events", "logs", "payload"}
    if unknown:
        raise ConfigurationError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

    values: dict[str, object] = {}
    if "engine" in data:
        values["engine"] = parse_boolean(data["engine"])
    if "events" in data:
        values["events"] = set_events(_as_list(data["events"]))
    if "logs" in data:
        values["log_dir"] = set_logs([str(data["logs"])])
    if "payload" in data:
        values["payload"] = set_payload(_as_list(data["payload"]))
    return PoolWatchConfig(**values)


def load_directives(lines: Iterable[str]) -> PoolWatchConfig:
    """Parse ``Directive arg ...`` lines; ``#`` starts a comment."""
    values: dict[str, object] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        name, *args = line.split()
        entry = _DIRECTIVES.get(name.lower())
        if entry is None:
            raise ConfigurationError(f"line {lineno}: unknown directive '{name}'")
        attr, handler = entry
        try:
            values[attr] = handler(args)
        except ConfigurationError as exc:
            raise ConfigurationError(f"line {lineno}: {name}: {exc}") from exc
    return PoolWatchConfig(**values)


def apply_env_overrides(config: PoolWatchConfig) -> PoolWatchConfig:
    """Apply ``POOLWATCH_ENGINE``, ``POOLWATCH_EVENTS`` and ``POOLWATCH_LOGS``."""
    changes: dict[str, object] = {}

    env_engine = os.environ.get("POOLWATCH_ENGINE")
    if env_engine:
        changes["engine"] = parse_boolean(env_engine)

    env_events = os.environ.get("POOLWATCH_EVENTS")
    if env_events:
        changes["events"] = set_events(_split(env_events))

    env_logs = os.environ.get("POOLWATCH_LOGS")
    if env_logs:
        changes["log_dir"] = validate_log_dir(env_logs)

    if not changes:
        return config
    return dataclasses.replace(config, **changes)


def _check_args(args: Sequence[str], expected: int) -> None:
    if len(args) != expected:
        raise ConfigurationError("wrong number of parameters")


def _as_list(value: object) -> list[str]:
    if isinstance(value, str):
        return _split(value)
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ConfigurationError(f"expected a list or string, got {type(value).__name__}")


def _split(text: str) -> list[str]:
    return [part for part in _LIST_SPLIT.split(text.strip()) if part]
