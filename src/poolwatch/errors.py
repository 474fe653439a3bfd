"""Exception hierarchy.

Configuration and provisioning errors are fatal at validation time. Every
other error is caught by the session manager and degrades the session to
"no diagnostics" instead of failing it.
"""

from __future__ import annotations


class PoolWatchError(Exception):
    """Base class for all poolwatch errors."""


class ConfigurationError(PoolWatchError, ValueError):
    """A malformed or unusable configuration directive."""


class ProvisioningError(PoolWatchError, OSError):
    """The log directory could not be created or chowned."""


class AlreadyExists(ProvisioningError):
    """The leaf path handed to the provisioner already exists."""


class ChannelOpenError(PoolWatchError, OSError):
    """The per-session log file could not be opened."""


class UnsafeDirectory(ChannelOpenError):
    """The log file's parent directory is world-writable."""


class UnsafeSymlink(ChannelOpenError):
    """The log file path is a symbolic link."""


class WriteError(PoolWatchError, OSError):
    """A diagnostic record could not be written."""


class CloseError(PoolWatchError, OSError):
    """The log file descriptor could not be closed."""
