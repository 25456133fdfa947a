"""
Notification Errors

Structured failures raised by the delivery pipeline. Every error carries a
``kind`` naming the failing step and the underlying ``cause``.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for all notification failures."""

    kind = "notification"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConnectionFailedError(NotificationError):
    """Smart host could not be reached or greeted."""
    kind = "connection"


class InvalidAddressError(NotificationError):
    """Configured address is not a valid host:port pair."""
    kind = "invalid_address"


class StartTLSError(NotificationError):
    kind = "starttls"


class AuthenticationError(NotificationError):
    """SMTP AUTH was rejected or could not be completed."""

    kind = "auth"

    def __init__(self, message: str, mechanism: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.mechanism = mechanism


class DeliveryError(NotificationError):
    """Envelope or message data was refused, or the session broke mid-stream.

    A failure during DATA leaves the delivery state unknown: the server may
    already have accepted part of the message.
    """
    kind = "delivery"


class RenderError(NotificationError):
    """The output stream rejected a write while rendering a message."""
    kind = "render"
