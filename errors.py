"""
Error taxonomy and response envelope.

Services raise one of the ApiError subclasses below. Nothing outside main.py
knows about HTTP; the status code travels with the error kind and is only
turned into a response by the exception handlers installed on the app.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class ApiError(Exception):
    kind = ErrorKind.INTERNAL
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


class ValidationError(ApiError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class UnauthorizedError(ApiError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized request"


class ForbiddenError(ApiError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You are not allowed to do this"


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT
    default_message = "Already exists"


class InternalError(ApiError):
    kind = ErrorKind.INTERNAL
    default_message = "Internal server error"


def api_response(status_code: int, data: Any = None, message: str = "Success") -> dict:
    return {
        "success": status_code < 400,
        "statusCode": status_code,
        "data": data,
        "message": message,
    }
