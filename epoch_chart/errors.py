"""
Chart Error Taxonomy
====================
Every error raised by a chart run derives from ChartError and is fatal to
the run: there is no per-row retry or skip-and-continue.
"""

from typing import Optional


class ChartError(Exception):
    """Base class for chart computation failures."""

    def __init__(self, message: str, row: Optional[int] = None):
        super().__init__(message)
        self.row = row


class InsufficientDataError(ChartError, ValueError):
    """Fewer than the required baseline measurements are populated."""


class MalformedMeasurementError(ChartError, ValueError):
    """A measurement cell is empty or non-numeric inside the processed range."""


class StoreAccessError(ChartError, RuntimeError):
    """The tabular store could not be read from or written to."""
