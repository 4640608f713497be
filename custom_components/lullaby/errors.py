"""
Exception types raised by the Lullaby synchronization core.

Normalization never raises; everything else surfaces one of these to the
calling component, which records it in its error state.
"""


class LullabyError(Exception):
    """Base class for all Lullaby errors."""


class UnauthenticatedError(LullabyError):
    """No user identity was available when one was required."""

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class NotFoundError(LullabyError):
    """A referenced device, event, notification or status record is absent."""


class TransportError(LullabyError):
    """A push channel, store or feed call failed."""


class ValidationError(LullabyError):
    """Input could not be validated."""
