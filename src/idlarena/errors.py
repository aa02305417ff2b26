"""Exceptions raised by the IDL Arena engine."""

from .models import FailureCode


class ArenaError(Exception):
    """Base class for arena errors."""


class InvariantViolation(ArenaError):
    """The economic model reached an impossible state.

    Never recovered from: the run is aborted and its status set to error.
    """


class ArithmeticOverflow(InvariantViolation):
    """A checked token computation left the 128-bit range."""


class ActionRejected(ArenaError):
    """An action failed protocol validation. State is left unchanged."""

    def __init__(self, code: FailureCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
