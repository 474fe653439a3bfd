"""Session manager — owns the counters and log channel of one session.

State machine::

    UNCONFIGURED -> DISABLED                 (engine off, no PoolLogs, open failed)
    UNCONFIGURED -> ACTIVE -> CLOSED

Nothing in here may fail the client's session: every diagnostic failure
either degrades the session to DISABLED or drops a single record.

Records for one event are paired by sequence number: the pre-command read
peeks the counter and the post-command read advances it. This relies on the
host never interleaving two commands with the same name in one session.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Sequence

from poolwatch.channel import SessionLogChannel
from poolwatch.config import PoolWatchConfig
from poolwatch.errors import ChannelOpenError, CloseError, WriteError
from poolwatch.events.classifier import is_enabled
from poolwatch.events.counter import EventCounter
from poolwatch.events.models import Category
from poolwatch.hooks import HookRegistry
from poolwatch.payload import MemoryPayload, build_payload
from poolwatch.session.models import (
    SESSION_EVENT,
    PoolSession,
    RecordPhase,
    SessionState,
    begin_marker,
    end_marker,
    record_label,
)

logger = logging.getLogger(__name__)


class PoolSessionManager:
    """Drives one session through the diagnostics lifecycle."""

    def __init__(
        self,
        config: PoolWatchConfig,
        payload: MemoryPayload | None = None,
        pid: int | None = None,
    ) -> None:
        self._config = config
        self._payload = payload if payload is not None else build_payload(config.payload)
        self._session = PoolSession(pid=pid if pid is not None else os.getpid())
        self._counter: EventCounter | None = None
        self._channel: SessionLogChannel | None = None

    @property
    def session(self) -> PoolSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def config(self) -> PoolWatchConfig:
        return self._config

    def start(self, hooks: HookRegistry | None = None) -> SessionState:
        """Resolve the session's state and, when ACTIVE, register hooks."""
        if self._session.state is not SessionState.UNCONFIGURED:
            raise RuntimeError(f"session already started ({self._session.state.value})")

        if not self._config.engine:
            logger.info("PoolEngine off, diagnostics disabled for pid %d", self._session.pid)
            return self._disable("PoolEngine off")

        if self._config.log_dir is None:
            logger.warning("Missing required PoolLogs directive, disabling diagnostics")
            return self._disable("missing PoolLogs directive")

        try:
            self._channel = SessionLogChannel.open_for_session(
                self._config.log_dir, self._session.pid
            )
        except ChannelOpenError as exc:
            logger.warning(
                "Unable to open PoolLogs logfile, disabling diagnostics: %s", exc
            )
            return self._disable(str(exc))

        self._counter = EventCounter()
        self._session.log_path = self._channel.path
        self._session.state = SessionState.ACTIVE
        logger.info(
            "Diagnostics active for pid %d, logging to '%s'",
            self._session.pid,
            self._channel.path,
        )

        if hooks is not None:
            hooks.register_pre(self.pre_command)
            hooks.register_post(self.post_command)
            hooks.register_exit(self.end)

        if self._session_events_enabled():
            self._emit(RecordPhase.PRE, SESSION_EVENT, delta=0)

        return self._session.state

    def pre_command(self, command: str, argv: Sequence[str] = ()) -> None:
        """Record a PRE snapshot for ``command`` if its category is selected."""
        if not self._accepts_commands():
            return
        if not is_enabled(command, self._config.events):
            return
        self._emit(RecordPhase.PRE, command, delta=0)

    def post_command(self, command: str, argv: Sequence[str] = ()) -> None:
        """Record a POST snapshot, whether or not the command succeeded."""
        if not self._accepts_commands():
            return
        if not is_enabled(command, self._config.events):
            return
        self._emit(RecordPhase.POST, command, delta=1)

    def end(self) -> None:
        """Close the session: final SESSION record, then release the channel."""
        if self._session.state is not SessionState.ACTIVE:
            return

        try:
            if self._session_events_enabled():
                self._emit(RecordPhase.POST, SESSION_EVENT, delta=1)
        finally:
            self._release()

        logger.debug(
            "Diagnostics closed for pid %d (%d records, %d dropped)",
            self._session.pid,
            self._session.records_written,
            self._session.records_dropped,
        )

    def _release(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            try:
                channel.close()
            except CloseError as exc:
                logger.warning("Error writing PoolLogs file: %s", exc)

        if self._counter is not None:
            self._counter.clear()
        self._counter = None
        self._session.state = SessionState.CLOSED
        self._session.end_time = time.time()

    def _accepts_commands(self) -> bool:
        state = self._session.state
        if state is SessionState.CLOSED:
            raise RuntimeError("command hook invoked on a closed diagnostics session")
        return state is SessionState.ACTIVE

    def _session_events_enabled(self) -> bool:
        return self._config.events.includes(Category.SESSION)

    def _disable(self, reason: str) -> SessionState:
        self._session.state = SessionState.DISABLED
        self._session.disabled_reason = reason
        return self._session.state

    def _emit(self, phase: RecordPhase, event: str, delta: int) -> None:
        """Write one BEGIN/payload/END record.

        The first failed write abandons the rest of the record. A failing
        payload producer gets a one-line error and the END marker, so the
        record stays bracketed.
        """
        if self._counter is None or self._channel is None:
            raise RuntimeError(f"no open diagnostics channel (state {self.state.value})")
        channel = self._channel
        count = self._counter.read_and_increment(event, delta)
        label = record_label(phase, event, count)

        try:
            channel.write_record(begin_marker(label))
            try:
                self._payload.dump(channel.write_record)
            except WriteError:
                raise
            except Exception as exc:
                logger.warning("Memory payload failed for %s: %s", label, exc)
                channel.write_record(f"payload error: {exc!r}")
                channel.write_record(end_marker(label))
                self._session.records_dropped += 1
                return
            channel.write_record(end_marker(label))
        except WriteError as exc:
            self._session.records_dropped += 1
            logger.warning("Dropped diagnostic record %s: %s", label, exc)
            return
        self._session.records_written += 1
