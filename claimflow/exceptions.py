"""
Typed exceptions for ClaimFlow.

Every error raised by the routes is a ``ClaimFlowError`` subclass carrying a
machine-readable ``code`` and the HTTP ``status_code`` it maps to. The
handlers registered in ``claimflow.main`` render them as::

    {"message": "<human readable>", "code": "<CODE>"}

Hierarchy:

    ClaimFlowError (500, SERVER_ERROR)
    |
    +-- ValidationError (400, VALIDATION_ERROR)
    |   +-- InvalidStateError (400, INVALID_STATE)
    |   +-- InvalidTokenError (400, INVALID_TOKEN)
    |   +-- CategoryInUseError (400, CATEGORY_IN_USE)
    |
    +-- UnauthorizedError (401, UNAUTHORIZED)
    +-- ForbiddenError (403, FORBIDDEN)
    +-- NotFoundError (404, NOT_FOUND)
    +-- ConflictError (409, CONFLICT)
    +-- ServerError (500, SERVER_ERROR)
"""

from typing import Optional


class ClaimFlowError(Exception):
    """Base exception for all ClaimFlow errors."""

    code: str = "SERVER_ERROR"
    status_code: int = 500
    default_message: str = "Internal server error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ClaimFlowError):
    """Missing or malformed input."""

    code: str = "VALIDATION_ERROR"
    status_code: int = 400
    default_message: str = "Invalid request."


class InvalidStateError(ValidationError):
    """The record's current status does not allow the requested action."""

    code: str = "INVALID_STATE"

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message)


class InvalidTokenError(ValidationError):
    """Password reset token is unknown or expired."""

    code: str = "INVALID_TOKEN"
    default_message: str = "Invalid or expired reset token."


class CategoryInUseError(ValidationError):
    """Category is referenced by expenses and cannot be deleted."""

    code: str = "CATEGORY_IN_USE"

    def __init__(self, category_id: int, expense_count: int):
        self.category_id = category_id
        self.expense_count = expense_count
        super().__init__(
            "Cannot delete category that is being used by expenses. Deactivate it instead."
        )


class UnauthorizedError(ClaimFlowError):
    """Missing, invalid or expired credentials."""

    code: str = "UNAUTHORIZED"
    status_code: int = 401
    default_message: str = "Authentication required."


class ForbiddenError(ClaimFlowError):
    """Authenticated, but not allowed to act on this resource."""

    code: str = "FORBIDDEN"
    status_code: int = 403
    default_message: str = "Access denied."


class NotFoundError(ClaimFlowError):
    """Resource id does not resolve."""

    code: str = "NOT_FOUND"
    status_code: int = 404

    def __init__(self, resource: str, resource_id=None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found.")


class ConflictError(ClaimFlowError):
    """Uniqueness violation."""

    code: str = "CONFLICT"
    status_code: int = 409
    default_message: str = "Resource already exists."


class ServerError(ClaimFlowError):
    """Unexpected failure (database, mail delivery, ...)."""
