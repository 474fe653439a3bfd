"""Memory diagnostic payloads written between a record's BEGIN/END markers.

Each producer writes its dump one line at a time through a sink callable;
the session manager passes the log channel's record writer as the sink.
"""

from __future__ import annotations

import gc
import os
import tracemalloc
from collections import Counter
from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

import psutil

Sink = Callable[[str], object]


@runtime_checkable
class MemoryPayload(Protocol):
    """Protocol for memory diagnostic producers."""

    def dump(self, sink: Sink) -> None:
        """Write the current memory state to ``sink``, one line per call."""
        ...


class PsutilPayload:
    """Process-level memory figures from psutil."""

    def __init__(self, pid: int | None = None, full: bool = False) -> None:
        self._pid = pid if pid is not None else os.getpid()
        self._full = full

    def dump(self, sink: Sink) -> None:
        try:
            proc = psutil.Process(self._pid)
            with proc.oneshot():
                if self._full:
                    mem = proc.memory_full_info()
                else:
                    mem = proc.memory_info()
                threads = proc.num_threads()
                fds = proc.num_fds() if hasattr(proc, "num_fds") else -1
        except (psutil.Error, OSError) as exc:
            sink(f"memory info unavailable for pid {self._pid}: {exc}")
            return

        sink(f"pid {self._pid}")
        for name, value in mem._asdict().items():
            sink(f"  {name}: {value} bytes")
        sink(f"  threads: {threads}")
        if fds >= 0:
            sink(f"  fds: {fds}")


class TracemallocPayload:
    """Top allocation sites from tracemalloc, grouped by source line."""

    def __init__(self, top: int = 20, key_type: str = "lineno") -> None:
        self._top = top
        self._key_type = key_type

    def dump(self, sink: Sink) -> None:
        if not tracemalloc.is_tracing():
            sink("tracemalloc is not tracing")
            return

        snapshot = tracemalloc.take_snapshot()
        current, peak = tracemalloc.get_traced_memory()
        sink(f"traced: {current} bytes (peak {peak} bytes)")
        for stat in snapshot.statistics(self._key_type)[: self._top]:
            sink(f"  {stat}")


class GcPayload:
    """Live object counts per type, like a pool-by-pool breakdown."""

    def __init__(self, top: int = 25) -> None:
        self._top = top

    def dump(self, sink: Sink) -> None:
        counts = Counter(type(obj).__name__ for obj in gc.get_objects())
        gen0, gen1, gen2 = gc.get_count()
        sink(f"gc objects: {sum(counts.values())} (gen counts {gen0}/{gen1}/{gen2})")
        for name, count in counts.most_common(self._top):
            sink(f"  {name}: {count}")


class CompositePayload:
    """Runs several producers in order into the same sink."""

    def __init__(self, producers: Sequence[MemoryPayload]) -> None:
        self._producers = tuple(producers)

    def dump(self, sink: Sink) -> None:
        for producer in self._producers:
            producer.dump(sink)


_PRODUCERS: dict[str, Callable[[], MemoryPayload]] = {
    "psutil": PsutilPayload,
    "tracemalloc": TracemallocPayload,
    "gc": GcPayload,
}


PAYLOAD_NAMES = tuple(_PRODUCERS)


def build_payload(names: Sequence[str]) -> MemoryPayload:
    """Build a producer from names such as ``["psutil", "gc"]``."""
    producers: list[MemoryPayload] = []
    for name in names:
        factory = _PRODUCERS.get(name.lower())
        if factory is None:
            raise ValueError(
                f"Unknown payload '{name}' (expected one of: {', '.join(_PRODUCERS)})"
            )
        producers.append(factory())
    if len(producers) == 1:
        return producers[0]
    return CompositePayload(producers)
