"""Scoped privilege elevation for the privileged log-file open."""

from __future__ import annotations

import logging
import os
import signal
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


def _can_elevate() -> bool:
    """Whether the process may switch its effective uid to root."""
    ruid, euid, suid = os.getresuid()
    return euid != 0 and 0 in (ruid, suid)


@contextmanager
def blocked_signals() -> Iterator[None]:
    """Defer delivery of all blockable signals for the duration of the block."""
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signal.valid_signals())
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


@contextmanager
def root_privileges() -> Iterator[bool]:
    """Run the enclosed block with effective uid/gid 0 when possible.

    Yields True if the block runs as root. A process that is neither root nor
    holding root as its real/saved uid runs the block unchanged, like a
    server started without privileges. Signals are blocked while privileges
    are raised and the previous identity is always restored.
    """
    prev_euid = os.geteuid()
    prev_egid = os.getegid()

    with blocked_signals():
        if prev_euid == 0:
            yield True
            return

        if not _can_elevate():
            logger.debug("Root privileges unavailable (euid %d)", prev_euid)
            yield False
            return

        os.seteuid(0)
        try:
            os.setegid(0)
            try:
                yield True
            finally:
                os.setegid(prev_egid)
        finally:
            os.seteuid(prev_euid)
