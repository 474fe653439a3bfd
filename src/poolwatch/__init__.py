"""PoolWatch — per-session memory snapshots around server commands."""

__version__ = "0.1.0"
