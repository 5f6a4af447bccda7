"""Error taxonomy shared by the lifecycle manager, accounts and HTTP layer."""

from __future__ import annotations


class HelpdeskError(RuntimeError):
    """Base error for helpdesk operations.

    Every subclass carries a stable ``kind`` that callers can match on and a
    human readable message that is safe to show to end users.
    """

    kind = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(HelpdeskError):
    """Raised when input is malformed or out of range."""

    kind = "validation_error"
    default_message = "Invalid input"

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class Unauthenticated(HelpdeskError):
    """Raised when credentials are missing or invalid."""

    kind = "unauthenticated"
    default_message = "Not authenticated"


class AccessDenied(HelpdeskError):
    """Raised when the requester does not own the resource."""

    kind = "access_denied"
    default_message = "Access denied"


class Forbidden(AccessDenied):
    """Raised when the requester's role does not permit the action."""

    kind = "forbidden"
    default_message = "Insufficient permissions"


class NotFound(HelpdeskError):
    """Raised when an identifier does not resolve."""

    kind = "not_found"
    default_message = "Not found"


class InvalidState(HelpdeskError):
    """Raised when the current ticket state disallows the operation."""

    kind = "invalid_state"
    default_message = "Operation not allowed in the current state"


class Conflict(HelpdeskError):
    """Raised when a unique identity (username, email) is already taken."""

    kind = "conflict"
    default_message = "Resource already exists"
