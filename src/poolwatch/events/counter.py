"""Per-session occurrence counters keyed by event name."""

from __future__ import annotations


class EventCounter:
    """Sequence numbers that pair PRE and POST records of one occurrence.

    A pre-command read uses ``delta=0`` and the matching post-command read
    uses ``delta=1``, so both records carry the same number and the next
    occurrence gets the following one. Not thread-safe: a session owns its
    counter and drives it from a single worker.
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def read_and_increment(self, event: str, delta: int) -> int:
        """Return the current count for ``event``, then add ``delta`` to it."""
        if delta < 0:
            raise ValueError(f"delta must not be negative, got {delta}")
        count = self._counts.setdefault(event, 1)
        self._counts[event] = count + delta
        return count

    def clear(self) -> None:
        self._counts.clear()
