"""Error taxonomy for the budget engine.

Everything here is locally recoverable: callers catch these at the boundary
and either report them or degrade (see SourceUnavailable).
"""

from __future__ import annotations


class BudgetCalcError(Exception):
    """Base class for all budget engine errors."""


class ValidationError(BudgetCalcError):
    """Malformed input (negative quantity, blank change reason, ...).

    Raised before any state change; nothing is written.
    """


class StateConflict(BudgetCalcError):
    """A write lost against newer state.

    Raised when approving/rejecting/cancelling a change that is already
    terminal, or when an enrichment write races a newer manual edit.
    The conflicting write is discarded; callers should re-fetch and retry.
    """

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class PermissionDenied(BudgetCalcError):
    """Actor role is not allowed to perform the requested transition."""


class ChangeNotFound(BudgetCalcError):
    """No pending budget change exists with the given id."""


class SourceUnavailable(BudgetCalcError):
    """An upstream narrative or extraction payload could not be obtained."""
