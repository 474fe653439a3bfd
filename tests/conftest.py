"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from poolwatch.config import PoolWatchConfig
from poolwatch.events.models import EventSelection


class RecordingPayload:
    """Payload producer that writes a fixed dump and counts calls."""

    def __init__(self, lines: tuple[str, ...] = ("pool dump",)) -> None:
        self.lines = lines
        self.calls = 0

    def dump(self, sink) -> None:
        self.calls += 1
        for line in self.lines:
            sink(line)


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    path = tmp_path / "pools"
    path.mkdir()
    os.chmod(path, 0o755)
    return path


@pytest.fixture
def payload() -> RecordingPayload:
    return RecordingPayload()


@pytest.fixture
def make_config(log_dir: Path):
    def _make(
        engine: bool = True,
        events: EventSelection | None = None,
        log_dir_override: Path | None = log_dir,
    ) -> PoolWatchConfig:
        return PoolWatchConfig(
            engine=engine,
            events=events if events is not None else EventSelection.everything(),
            log_dir=log_dir_override,
        )

    return _make


def read_labels(path: Path) -> list[str]:
    """BEGIN marker labels of a pool log, in order."""
    prefix = "-----BEGIN POOLS: "
    return [
        line[len(prefix) : -len("-----")]
        for line in path.read_text().splitlines()
        if line.startswith(prefix)
    ]


@pytest.fixture
def labels():
    return read_labels
