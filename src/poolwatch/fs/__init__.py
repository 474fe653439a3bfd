"""Filesystem helpers for log directory provisioning."""
