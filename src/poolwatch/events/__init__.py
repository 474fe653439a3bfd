"""Command classification and per-session event counters."""

from poolwatch.events.classifier import classify, is_enabled
from poolwatch.events.counter import EventCounter
from poolwatch.events.models import Category, EventSelection

__all__ = ["Category", "EventCounter", "EventSelection", "classify", "is_enabled"]
