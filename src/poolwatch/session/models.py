"""Session data models — lifecycle state and per-session bookkeeping."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path


class SessionState(enum.Enum):
    """Lifecycle state of a diagnostics session."""

    UNCONFIGURED = "unconfigured"
    DISABLED = "disabled"
    ACTIVE = "active"
    CLOSED = "closed"


class RecordPhase(enum.Enum):
    """Which side of an event a record was taken on."""

    PRE = "PRE"
    POST = "POST"


SESSION_EVENT = "SESSION"


@dataclass
class PoolSession:
    """Bookkeeping for one client session."""

    pid: int
    state: SessionState = SessionState.UNCONFIGURED
    log_path: Path | None = None
    disabled_reason: str = ""
    records_written: int = 0
    records_dropped: int = 0
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


def record_label(phase: RecordPhase, event: str, count: int) -> str:
    return f"{phase.value}-{event} #{count}"


def begin_marker(label: str) -> str:
    return f"-----BEGIN POOLS: {label}-----"


def end_marker(label: str) -> str:
    return f"-----END POOLS: {label}-----"
