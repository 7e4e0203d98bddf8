from abc import ABC


class UserError(ABC, Exception):
    """Base class for user-related errors.

    All errors that inherit from UserError will have their messages
    displayed to the user. These errors should not contain any
    sensitive information.
    """


class NotFoundError(UserError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "Document not found") -> None:
        super().__init__(message)


class AuthenticationError(UserError):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AccessDeniedError(UserError):
    """Raised when a user tries to access a resource they do not have permission for."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ValidationError(UserError):
    """Raised when user input fails validation."""


class ConflictError(UserError):
    """Raised when a request conflicts with current state (reused OTP, duplicate user)."""


class RateLimitError(UserError):
    """Raised when a caller exceeded an allowed request budget."""


class StoreError(Exception):
    """Raised when the KV store reports a failed write."""


class QueueError(Exception):
    """Base class for broker-side failures. Never shown to HTTP callers."""


class PublishError(QueueError):
    """Raised when the broker rejects or fails to confirm a published message."""


class QueueDeclareError(QueueError):
    """Raised when the work queue cannot be declared. Treated as fatal."""
