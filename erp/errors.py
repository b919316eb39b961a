from __future__ import annotations


class AppError(Exception):
    """
    Base application error.

    Every subclass carries the HTTP status it maps to and a human-readable message
    that is safe to show to the caller. Internal detail belongs in the logs only.
    """

    status_code: int = 500
    default_message: str = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(AppError):
    status_code = 404
    default_message = "record not found"


class ConstraintViolation(AppError):
    status_code = 409
    default_message = "constraint violation"


class ValidationError(AppError):
    status_code = 422
    default_message = "invalid input"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "authentication required"


class TokenRevoked(Unauthenticated):
    default_message = "token is no longer valid"


class Forbidden(AppError):
    status_code = 403
    default_message = "access denied"


class TooManyRequests(AppError):
    status_code = 429
    default_message = "too many requests, please retry later"


class DatabaseError(AppError):
    status_code = 500
    default_message = "database error"


class DeadlineExceeded(DatabaseError):
    default_message = "operation deadline exceeded"


class InternalError(AppError):
    status_code = 500
    default_message = "internal server error"
