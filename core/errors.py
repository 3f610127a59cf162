"""
core/errors.py -- Error taxonomy shared by auth/, ratings/ and api/.

Domain code raises these; api/main.py owns the single exception handler that
renders them as the failure envelope {"success": false, "message": ...}.
Keeping HTTP status codes on the exception class means no domain module has
to import FastAPI.

  Unauthenticated  401  missing/invalid/expired token, or deleted subject
  Forbidden        403  authenticated but role or ownership mismatch
  InvalidInput     400  out-of-range rating, bad payload, duplicate email
  NotFound         404  referenced rating/store/user absent
  Conflict         409  uniqueness race that survived the update retry

Layer rule: core/ is the kernel. No imports from api/, auth/, db/, or ratings/.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto a client-visible HTTP status."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authorized to access this route"


class Forbidden(AppError):
    status_code = 403
    default_message = "Not allowed to perform this action"


class InvalidInput(AppError):
    """Client-correctable input error.

    errors carries field-level detail as [{"field": ..., "message": ...}] so
    the client can attach each message to the offending form field.
    """

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    default_message = "The resource was modified concurrently. Please retry."


class InvalidToken(Exception):
    """Raised by TokenService.verify(). Never surfaced to clients directly.

    The Auth Gate converts it into Unauthenticated with a generic message so
    the response does not reveal why a token was rejected.
    """
