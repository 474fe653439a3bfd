"""Tests for the session lifecycle manager."""

from __future__ import annotations

import errno
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from poolwatch.errors import ChannelOpenError
from poolwatch.events.models import Category, EventSelection
from poolwatch.hooks import HookRegistry
from poolwatch.session.manager import PoolSessionManager
from poolwatch.session.models import RecordPhase, SessionState


def _noop() -> None:
    return None


def test_download_only_scenario(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.from_names(["Downloads"]))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=4242)

    assert manager.start(hooks) is SessionState.ACTIVE
    hooks.dispatch("USER", ["USER", "ftp"], _noop)
    hooks.dispatch("RETR", ["RETR", "file.bin"], _noop)
    hooks.dispatch("LIST", ["LIST"], _noop)
    hooks.exit()

    log_path = log_dir / "pid-4242.txt"
    assert labels(log_path) == ["PRE-RETR #1", "POST-RETR #1"]
    assert manager.state is SessionState.CLOSED


def test_record_shape(make_config, payload, log_dir: Path):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=1)
    manager.start(hooks)
    hooks.dispatch("RETR", ["RETR", "a"], _noop)
    hooks.exit()

    assert (log_dir / "pid-1.txt").read_text().splitlines() == [
        "-----BEGIN POOLS: PRE-RETR #1-----",
        "pool dump",
        "-----END POOLS: PRE-RETR #1-----",
        "-----BEGIN POOLS: POST-RETR #1-----",
        "pool dump",
        "-----END POOLS: POST-RETR #1-----",
    ]


def test_empty_session_with_all(make_config, payload, log_dir: Path, labels):
    hooks = HookRegistry()
    manager = PoolSessionManager(make_config(), payload=payload, pid=7)
    manager.start(hooks)
    hooks.exit()

    assert labels(log_dir / "pid-7.txt") == ["PRE-SESSION #1", "POST-SESSION #1"]
    assert payload.calls == 2


def test_disabled_engine_creates_nothing(make_config, payload, log_dir: Path):
    hooks = HookRegistry()
    manager = PoolSessionManager(make_config(engine=False), payload=payload, pid=7)

    assert manager.start(hooks) is SessionState.DISABLED
    assert not hooks.has_hooks
    assert list(log_dir.iterdir()) == []
    assert payload.calls == 0


def test_missing_log_dir_disables(make_config, payload, caplog: pytest.LogCaptureFixture):
    hooks = HookRegistry()
    manager = PoolSessionManager(make_config(log_dir_override=None), payload=payload)

    assert manager.start(hooks) is SessionState.DISABLED
    assert not hooks.has_hooks
    assert "PoolLogs" in manager.session.disabled_reason
    assert "Missing required PoolLogs" in caplog.text


def test_world_writable_dir_disables(make_config, payload, log_dir: Path, caplog):
    os.chmod(log_dir, 0o777)
    hooks = HookRegistry()
    manager = PoolSessionManager(make_config(), payload=payload, pid=3)

    assert manager.start(hooks) is SessionState.DISABLED
    assert not hooks.has_hooks
    assert "world-writable" in caplog.text
    assert not (log_dir / "pid-3.txt").exists()


def test_symlink_disables(make_config, payload, log_dir: Path, tmp_path: Path):
    target = tmp_path / "target.txt"
    target.write_text("")
    (log_dir / "pid-3.txt").symlink_to(target)

    manager = PoolSessionManager(make_config(), payload=payload, pid=3)
    assert manager.start() is SessionState.DISABLED
    assert target.read_text() == ""


def test_open_error_disables(make_config, payload):
    manager = PoolSessionManager(make_config(), payload=payload, pid=3)
    with patch(
        "poolwatch.session.manager.SessionLogChannel.open_for_session",
        side_effect=ChannelOpenError(errno.EACCES, "Permission denied"),
    ):
        assert manager.start() is SessionState.DISABLED
    assert "Permission denied" in manager.session.disabled_reason


def test_disabled_hooks_are_noops(make_config, payload):
    manager = PoolSessionManager(make_config(engine=False), payload=payload)
    manager.start()
    manager.pre_command("RETR")
    manager.post_command("RETR")
    manager.end()
    assert manager.state is SessionState.DISABLED
    assert payload.calls == 0


def test_sequence_numbers_advance(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD, Category.UPLOAD))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=9)
    manager.start(hooks)
    for command in ["RETR", "STOR", "RETR"]:
        hooks.dispatch(command, [command, "x"], _noop)
    hooks.exit()

    assert labels(log_dir / "pid-9.txt") == [
        "PRE-RETR #1",
        "POST-RETR #1",
        "PRE-STOR #1",
        "POST-STOR #1",
        "PRE-RETR #2",
        "POST-RETR #2",
    ]


def test_failed_command_still_recorded(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.of(Category.UPLOAD))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=9)
    manager.start(hooks)

    def failing() -> None:
        raise PermissionError("denied")

    with pytest.raises(PermissionError):
        hooks.dispatch("STOR", ["STOR", "x"], failing)
    hooks.exit()

    assert labels(log_dir / "pid-9.txt") == ["PRE-STOR #1", "POST-STOR #1"]


def test_label_uses_literal_token(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    manager = PoolSessionManager(config, payload=payload, pid=2)
    manager.start()
    manager.pre_command("retr")
    manager.post_command("retr")
    manager.end()

    assert labels(log_dir / "pid-2.txt") == ["PRE-retr #1", "POST-retr #1"]


def test_sessions_with_commands(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.from_names(["Sessions", "Logins"]))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=5)
    manager.start(hooks)
    hooks.dispatch("USER", ["USER", "a"], _noop)
    hooks.dispatch("PASS", ["PASS", "b"], _noop)
    hooks.dispatch("RETR", ["RETR", "c"], _noop)
    hooks.exit()

    assert labels(log_dir / "pid-5.txt") == [
        "PRE-SESSION #1",
        "PRE-USER #1",
        "POST-USER #1",
        "PRE-PASS #1",
        "POST-PASS #1",
        "POST-SESSION #1",
    ]


def test_channel_closed_without_session_events(make_config, payload):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    hooks = HookRegistry()
    manager = PoolSessionManager(config, payload=payload, pid=6)
    manager.start(hooks)
    channel = manager._channel
    assert channel is not None

    hooks.exit()

    assert channel.closed
    assert manager.state is SessionState.CLOSED
    assert manager.session.end_time is not None


def test_write_errors_are_dropped(make_config, payload, log_dir: Path, caplog):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    manager = PoolSessionManager(config, payload=payload, pid=8)
    manager.start()

    with patch(
        "poolwatch.channel.os.write",
        side_effect=OSError(errno.ENOSPC, "No space left on device"),
    ):
        manager.pre_command("RETR")
        manager.post_command("RETR")
    manager.end()

    assert manager.session.records_dropped == 2
    assert manager.session.records_written == 0
    assert manager.state is SessionState.CLOSED
    assert "Dropped diagnostic record" in caplog.text


def test_close_error_does_not_block_teardown(make_config, payload, caplog):
    manager = PoolSessionManager(make_config(), payload=payload, pid=8)
    manager.start()
    fd = manager._channel._fd

    try:
        with patch(
            "poolwatch.channel.os.close",
            side_effect=OSError(errno.EIO, "I/O error"),
        ):
            manager.end()
    finally:
        os.close(fd)

    assert manager.state is SessionState.CLOSED
    assert "Error writing PoolLogs file" in caplog.text


def test_hooks_after_close_are_programming_errors(make_config, payload):
    manager = PoolSessionManager(make_config(), payload=payload, pid=8)
    manager.start()
    manager.end()

    with pytest.raises(RuntimeError):
        manager.pre_command("RETR")
    with pytest.raises(RuntimeError):
        manager.post_command("RETR")


def test_end_is_idempotent(make_config, payload, log_dir: Path, labels):
    manager = PoolSessionManager(make_config(), payload=payload, pid=8)
    manager.start()
    manager.end()
    manager.end()
    assert labels(log_dir / "pid-8.txt") == ["PRE-SESSION #1", "POST-SESSION #1"]


def test_start_twice_rejected(make_config, payload):
    manager = PoolSessionManager(make_config(engine=False), payload=payload)
    manager.start()
    with pytest.raises(RuntimeError):
        manager.start()


def test_default_pid_and_payload(make_config, log_dir: Path):
    manager = PoolSessionManager(make_config())
    assert manager.session.pid == os.getpid()
    manager.start()
    manager.end()

    text = (log_dir / f"pid-{os.getpid()}.txt").read_text()
    assert "rss:" in text


def test_sessions_are_independent(make_config, payload, log_dir: Path, labels):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    first = PoolSessionManager(config, payload=payload, pid=100)
    second = PoolSessionManager(config, payload=payload, pid=200)
    first.start()
    second.start()

    first.pre_command("RETR")
    first.post_command("RETR")
    second.pre_command("RETR")
    second.post_command("RETR")
    first.end()
    second.end()

    assert labels(log_dir / "pid-100.txt") == ["PRE-RETR #1", "POST-RETR #1"]
    assert labels(log_dir / "pid-200.txt") == ["PRE-RETR #1", "POST-RETR #1"]


class FailingPayload:
    """Payload whose dump raises on the given call numbers (1-based)."""

    def __init__(self, fail_on: set[int]) -> None:
        self.fail_on = fail_on
        self.calls = 0

    def dump(self, sink) -> None:
        self.calls += 1
        sink("partial")
        if self.calls in self.fail_on:
            raise RuntimeError("allocator dump failed")
        sink("complete")


def test_payload_failure_does_not_block_command(make_config, log_dir: Path, caplog):
    hooks = HookRegistry()
    manager = PoolSessionManager(make_config(), payload=FailingPayload({1, 2, 3}), pid=31)

    assert manager.start(hooks) is SessionState.ACTIVE
    ran: list[bool] = []
    result = hooks.dispatch("RETR", ["RETR", "a"], lambda: ran.append(True) or "ok")
    hooks.exit()

    assert result == "ok"
    assert ran == [True]
    assert manager.state is SessionState.CLOSED
    assert manager.session.records_dropped == 3
    assert manager.session.records_written == 1
    assert "Memory payload failed" in caplog.text


def test_payload_failure_keeps_record_bracketed(make_config, log_dir: Path):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    manager = PoolSessionManager(config, payload=FailingPayload({1}), pid=33)
    manager.start()
    manager.pre_command("RETR")
    manager.end()

    lines = (log_dir / "pid-33.txt").read_text().splitlines()
    assert lines[0] == "-----BEGIN POOLS: PRE-RETR #1-----"
    assert lines[1] == "partial"
    assert "allocator dump failed" in lines[2]
    assert lines[3] == "-----END POOLS: PRE-RETR #1-----"


def test_final_record_failure_still_closes(make_config, log_dir: Path, labels):
    manager = PoolSessionManager(make_config(), payload=FailingPayload({2}), pid=32)
    manager.start()
    channel = manager._channel
    assert channel is not None

    manager.end()

    assert channel.closed
    assert manager.state is SessionState.CLOSED
    assert labels(log_dir / "pid-32.txt") == ["PRE-SESSION #1", "POST-SESSION #1"]


def test_teardown_closes_channel_on_unexpected_error(make_config, payload):
    manager = PoolSessionManager(make_config(), payload=payload, pid=34)
    manager.start()
    channel = manager._channel
    assert channel is not None

    with patch.object(manager, "_emit", side_effect=KeyboardInterrupt):
        with pytest.raises(KeyboardInterrupt):
            manager.end()

    assert channel.closed
    assert manager.state is SessionState.CLOSED


class TwoLinePayload:
    def __init__(self) -> None:
        self.calls = 0

    def dump(self, sink) -> None:
        self.calls += 1
        sink("first")
        sink("second")


def test_write_failure_abandons_rest_of_record(make_config, log_dir: Path):
    config = make_config(events=EventSelection.of(Category.DOWNLOAD))
    payload = TwoLinePayload()
    manager = PoolSessionManager(config, payload=payload, pid=35)
    manager.start()

    real_write = os.write
    writes: list[bytes] = []

    def failing_second_write(fd, data):
        writes.append(data)
        if len(writes) == 2:
            raise OSError(errno.ENOSPC, "No space left on device")
        return real_write(fd, data)

    with patch("poolwatch.channel.os.write", side_effect=failing_second_write):
        manager.pre_command("RETR")
    manager.post_command("RETR")
    manager.end()

    assert len(writes) == 2
    assert payload.calls == 2
    assert manager.session.records_dropped == 1
    assert manager.session.records_written == 1
    lines = (log_dir / "pid-35.txt").read_text().splitlines()
    assert lines[0] == "-----BEGIN POOLS: PRE-RETR #1-----"
    assert lines[1] == "-----BEGIN POOLS: POST-RETR #1-----"
    assert lines[-1] == "-----END POOLS: POST-RETR #1-----"


def test_emit_without_channel_is_programming_error(make_config, payload):
    manager = PoolSessionManager(make_config(engine=False), payload=payload)
    with pytest.raises(RuntimeError, match="no open diagnostics channel"):
        manager._emit(RecordPhase.PRE, "RETR", delta=0)
