"""Error taxonomy shared by the grading engine and the service layer.

Controllers translate these into HTTP responses; nothing in the engine
catches them. A quiz with zero total points is not an error: grading it
yields a percentage of 0.
"""


class GradingError(Exception):
    """Base class for all domain errors raised by this package."""


class ValidationError(GradingError):
    """Malformed input: unknown question, missing answer value, negative points."""


class StateError(GradingError):
    """Operation not allowed in the current attempt or quiz state."""


class NotFoundError(GradingError):
    """A referenced quiz, attempt or user does not exist."""


class PermissionDeniedError(GradingError):
    """The acting user may not perform the operation."""
