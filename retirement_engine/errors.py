"""Exception types raised by the simulation engine.

Ruin inside a simulated path is an outcome, not an error, and never shows up
here.  Generational requests with no beneficiaries (or nothing to
distribute) resolve to ``None`` instead of raising.
"""

from __future__ import annotations

from typing import Optional


class RetirementEngineError(Exception):
    """Base class for every error raised by :mod:`retirement_engine`."""


class ValidationError(RetirementEngineError, ValueError):
    """An input is malformed or outside its allowed range.

    ``field`` names the offending :class:`~retirement_engine.models.SimulationInputs`
    attribute so callers can point the user at it.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def __reduce__(self):
        return (type(self), (self.field, self.message))


class ComputationError(RetirementEngineError):
    """A run failed for a reason other than bad input."""

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind

    def __reduce__(self):
        return (type(self), (self.message, self.kind))


class GenerationalTimeoutError(RetirementEngineError, TimeoutError):
    """A generational (legacy) request did not finish within its time limit."""


class SimulationCancelled(RetirementEngineError):
    """A batch was stopped through its cancellation event."""


__all__ = [
    "RetirementEngineError",
    "ValidationError",
    "ComputationError",
    "GenerationalTimeoutError",
    "SimulationCancelled",
]
