"""
Domain exceptions for the connection code subsystem.

API routes translate these into HTTP errors with generic messages; the
messages here are for logs and never carry internal identifiers to
anonymous callers.
"""


class ConnectionCodeError(Exception):
    """Base exception for all connection code errors."""

    pass


class NotFoundOrInactive(ConnectionCodeError):
    """Raised when a code is absent, deactivated, expired or not public."""

    def __init__(self, message: str = "Profile not found"):
        super().__init__(message)


class CodeExpired(NotFoundOrInactive):
    """Raised when a still-active code is past its expiry."""

    def __init__(self, message: str = "This connection code has expired"):
        super().__init__(message)


class ProfileNotFound(ConnectionCodeError):
    """Raised when an owner has no profile row."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Profile '{user_id}' not found")


class ValidationError(ConnectionCodeError):
    """Raised when invitation input fails validation."""

    pass


class InvalidEmail(ValidationError):
    """Raised for a malformed or disallowed recipient email."""

    pass


class InvalidMessage(ValidationError):
    """Raised when the invitation message is too long."""

    pass


class DeliveryFailure(ConnectionCodeError):
    """Raised when the email transport fails."""

    pass


class EmailDeliveryFailed(DeliveryFailure):
    """Raised when an invitation email could not be delivered."""

    pass


class PersistenceError(ConnectionCodeError):
    """Raised when the backing store is unavailable or a write fails."""

    pass


class InvitationNotFound(ConnectionCodeError):
    """Raised when an invitation does not exist or is not owned by the caller."""

    pass


class ConnectionRequestNotFound(ConnectionCodeError):
    """Raised when a connection request does not exist or is not addressed to the caller."""

    pass
