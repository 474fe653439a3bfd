"""Session log channel — the append-only per-session diagnostics file.

The file is opened once per session with root privileges (when the process
has them to give up) and refuses two hostile layouts: a world-writable
parent directory, where the predictable file name could be pre-created by
anyone, and a symbolic link in place of the file itself.
"""

from __future__ import annotations

import errno
import logging
import os
import stat
from pathlib import Path

from poolwatch.errors import (
    ChannelOpenError,
    CloseError,
    UnsafeDirectory,
    UnsafeSymlink,
    WriteError,
)
from poolwatch.privs import root_privileges

logger = logging.getLogger(__name__)

MAX_RECORD_SIZE = 1024
LOG_FILE_MODE = 0o644

_OPEN_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_APPEND | os.O_NOFOLLOW | os.O_NOCTTY


def session_log_path(base_directory: str | os.PathLike[str], session_id: int) -> Path:
    """Path of the log file for a session: ``<dir>/pid-<id>.txt``."""
    return Path(base_directory) / f"pid-{session_id}.txt"


class SessionLogChannel:
    """An open, append-only log file bound to one session."""

    def __init__(self, fd: int, path: Path) -> None:
        self._fd = fd
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._fd < 0

    @classmethod
    def open_for_session(
        cls,
        base_directory: str | os.PathLike[str],
        session_id: int,
    ) -> SessionLogChannel:
        """Open ``pid-<session_id>.txt`` under ``base_directory``.

        Raises ``UnsafeDirectory`` or ``UnsafeSymlink`` when the hardening
        checks fail, ``ChannelOpenError`` for any other open failure. No file
        descriptor is left open on failure.
        """
        path = session_log_path(base_directory, session_id)

        with root_privileges():
            fd = _open_hardened(path)

        logger.debug("Opened session log '%s' (fd %d)", path, fd)
        return cls(fd, path)

    def write_record(self, text: str) -> int:
        """Append one newline-terminated record, truncated to ``MAX_RECORD_SIZE``.

        Returns the number of bytes written.
        """
        if self.closed:
            raise RuntimeError(f"write to closed session log '{self._path}'")

        data = text.encode("utf-8", errors="replace")
        if not data.endswith(b"\n"):
            data += b"\n"
        if len(data) > MAX_RECORD_SIZE:
            data = data[: MAX_RECORD_SIZE - 1] + b"\n"

        try:
            return os.write(self._fd, data)
        except OSError as exc:
            raise WriteError(
                exc.errno, f"error writing to '{self._path}': {exc.strerror}"
            ) from exc

    def close(self) -> None:
        """Close the descriptor. Closing twice is a programming error."""
        if self.closed:
            raise RuntimeError(f"session log '{self._path}' already closed")

        fd, self._fd = self._fd, -1
        try:
            os.close(fd)
        except OSError as exc:
            raise CloseError(
                exc.errno, f"error closing '{self._path}': {exc.strerror}"
            ) from exc

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"fd={self._fd}"
        return f"SessionLogChannel({str(self._path)!r}, {state})"


def _open_hardened(path: Path) -> int:
    parent = path.parent
    try:
        parent_st = os.stat(parent)
    except OSError as exc:
        raise ChannelOpenError(
            exc.errno, f"unable to stat log directory '{parent}': {exc.strerror}"
        ) from exc

    if parent_st.st_mode & stat.S_IWOTH:
        logger.warning(
            "Unable to open session log '%s': parent directory is world-writable",
            path,
        )
        raise UnsafeDirectory(errno.EPERM, f"world-writable directory: {parent}")

    try:
        fd = os.open(path, _OPEN_FLAGS, LOG_FILE_MODE)
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            _symlink_notice(path)
            raise UnsafeSymlink(errno.EPERM, f"symbolic link: {path}") from exc
        raise ChannelOpenError(
            exc.errno, f"unable to open '{path}': {exc.strerror}"
        ) from exc

    try:
        _verify_opened(fd, path)
    except BaseException:
        os.close(fd)
        raise
    return fd


def _verify_opened(fd: int, path: Path) -> None:
    # The path must still name the file we hold, and must not be a link.
    try:
        link_st = os.lstat(path)
    except OSError as exc:
        raise ChannelOpenError(
            exc.errno, f"unable to lstat '{path}': {exc.strerror}"
        ) from exc

    if stat.S_ISLNK(link_st.st_mode):
        _symlink_notice(path)
        raise UnsafeSymlink(errno.EPERM, f"symbolic link: {path}")

    fd_st = os.fstat(fd)
    if (fd_st.st_dev, fd_st.st_ino) != (link_st.st_dev, link_st.st_ino):
        _symlink_notice(path)
        raise UnsafeSymlink(errno.EPERM, f"path replaced during open: {path}")

    if not stat.S_ISREG(fd_st.st_mode):
        raise ChannelOpenError(errno.EINVAL, f"not a regular file: {path}")


def _symlink_notice(path: Path) -> None:
    logger.warning(
        "Unable to open session log '%s': cannot log to a symbolic link", path
    )
