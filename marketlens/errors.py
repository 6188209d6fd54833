"""Engine error types and the shared minimum-length guard."""

from typing import Sized


class InsufficientDataError(ValueError):
    """Raised when a calculation receives fewer data points than it needs.

    Subclasses ``ValueError`` so callers that already guard indicator calls
    with ``except ValueError`` keep working.

    Attributes:
        required: Minimum number of data points the calculation needs.
        actual: Number of data points that were supplied.
    """

    def __init__(self, message: str, required: int = 0, actual: int = 0) -> None:
        super().__init__(message)
        self.required = required
        self.actual = actual


def require_length(values: Sized, minimum: int, what: str) -> None:
    """Raise ``InsufficientDataError`` if *values* has fewer than *minimum* items.

    Every indicator, classifier and backtest entry point goes through this
    guard so the error message format stays the same across the engine.

    Args:
        values: The sequence being checked.
        minimum: Minimum required length.
        what: Human-readable name of the calculation, e.g. ``"RSI(14)"``.
    """
    actual = len(values)
    if actual < minimum:
        raise InsufficientDataError(
            f"Need at least {minimum} data points for {what}, got {actual}",
            required=minimum,
            actual=actual,
        )
