# basstrace/errors.py
from __future__ import annotations


class BasstraceError(Exception):
    """Base class for all solver errors."""


class GeometryError(BasstraceError):
    """Invalid surface or surface set (non-planar, degenerate, not enclosing)."""


class ConfigurationError(BasstraceError):
    """Non-physical configuration or query, e.g. a listener on top of a source."""


class SweepCancelled(BasstraceError):
    """A grid sweep was stopped through its cancel event."""

    def __init__(self, done: int, total: int):
        super().__init__(f"sweep cancelled after {done}/{total} grid points")
        self.done = done
        self.total = total
