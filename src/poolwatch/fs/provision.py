"""Log directory provisioning — create a directory tree with fixed ownership."""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath

from poolwatch.errors import AlreadyExists, ProvisioningError

logger = logging.getLogger(__name__)


def ensure_directory_tree(
    path: str | os.PathLike[str],
    uid: int,
    gid: int,
    mode: int = 0o755,
) -> list[Path]:
    """Create ``path`` and every missing ancestor, owned by ``uid``/``gid``.

    ``mode`` is applied literally, not filtered through the umask. Existing
    ancestors are left untouched. Returns the directories that were created,
    outermost first.

    Raises ``AlreadyExists`` if the leaf already exists (as anything), and
    ``ProvisioningError`` for any other failure.
    """
    target = PurePosixPath(os.fspath(path))
    if not target.is_absolute():
        raise ProvisioningError(f"path must be absolute: {target}")

    if _exists(target):
        raise AlreadyExists(f"path already exists: {target}")

    created: list[Path] = []
    current = PurePosixPath("/")
    for part in target.parts[1:]:
        current = current / part
        if _mkdir(current, uid, gid, mode):
            created.append(Path(current))

    return created


def _exists(path: PurePosixPath) -> bool:
    # Uncached: must observe directories created by other processes.
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise ProvisioningError(f"unable to stat '{path}': {exc.strerror}") from exc
    return True


def _mkdir(path: PurePosixPath, uid: int, gid: int, mode: int) -> bool:
    """Create one directory segment. Returns False if it already existed."""
    if _exists(path):
        return False

    prev_mask = os.umask(0)
    try:
        os.mkdir(path, mode)
    except FileExistsError:
        logger.debug("Directory '%s' appeared concurrently", path)
        return False
    except OSError as exc:
        raise ProvisioningError(
            f"unable to create directory '{path}': {exc.strerror}"
        ) from exc
    finally:
        os.umask(prev_mask)

    try:
        os.chown(path, uid, gid)
    except OSError as exc:
        raise ProvisioningError(
            f"unable to chown directory '{path}' to {uid}:{gid}: {exc.strerror}"
        ) from exc

    logger.debug("Created directory '%s' (mode %04o, owner %d:%d)", path, mode, uid, gid)
    return True
