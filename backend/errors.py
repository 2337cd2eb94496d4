"""
Errors raised by the wellness backend. Routers translate them to HTTP responses,
the live channel to error messages.
"""


class WellnessError(Exception):
    """Base class; the message is shown to the user as-is."""


class AuthError(WellnessError):
    """Bad credentials, unconfirmed email, unknown or expired token."""


class NetworkError(WellnessError):
    """The store could not be reached."""


class ValidationError(WellnessError):
    """Malformed input (quiz field, tab name, missing owner)."""


class TimerError(WellnessError):
    """Timer action not allowed in the current state."""


class DuplicateSubmission(WellnessError):
    """The same owner already has a submission in flight."""
