"""
core/errors.py -- Domain error taxonomy.

Every failure a route can report maps to exactly one subclass of AppError.
Each class carries the HTTP status and a stable machine-readable code; the
exception handler in api/main.py turns them into the ErrorResponse envelope.

  ValidationError      400  malformed or missing input
  AuthenticationError  401  missing/invalid/expired token or bad credentials
  AuthorizationError   403  valid identity, insufficient role or ownership
  NotFoundError        404
  ConflictError        409  duplicate unique field
  DependencyError      500  database or cache unreachable / erroring

401 and 403 are separate classes: "who are you?" and "you may
not do that" must never collapse into one status.
"""

from __future__ import annotations


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthorized"


class AuthorizationError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class DependencyError(AppError):
    """A backing service (database, Redis) failed or is unreachable."""

    status_code = 500
    code = "dependency_error"
