"""
Application errors.

Services raise these at the point a business rule is violated; the HTTP
layer maps ``kind`` to a status code and never needs to know the details.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INTERNAL = "internal"


class AppError(Exception):
    """Base class for every error the core reports to callers."""

    code = "INTERNAL_ERROR"
    kind = ErrorKind.INTERNAL
    default_message = "Internal server error"
    # Overrides the status derived from kind
    status_code: Optional[int] = None

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        data = {"detail": self.message, "code": self.code}
        if self.details is not None:
            data["details"] = self.details
        return data


# ==================== AUTHENTICATION ====================

class NotAuthenticated(AppError):
    code = "NOT_AUTHENTICATED"
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication required"


class InvalidToken(AppError):
    code = "INVALID_TOKEN"
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Invalid token"


class TokenExpired(InvalidToken):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class TokenRevoked(InvalidToken):
    code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"


class InvalidCredentials(AppError):
    code = "INVALID_CREDENTIALS"
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Invalid username or password"


class InvalidPassword(AppError):
    code = "INVALID_PASSWORD"
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Current password is incorrect"


class AccountLocked(AppError):
    code = "ACCOUNT_LOCKED"
    kind = ErrorKind.FORBIDDEN
    status_code = 423
    default_message = "Account is locked. Please try again later."


class AccountInactive(AppError):
    code = "ACCOUNT_INACTIVE"
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Account is inactive"


# ==================== AUTHORIZATION ====================

class Forbidden(AppError):
    code = "FORBIDDEN"
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have permission to perform this action"


class NoAccess(AppError):
    code = "NO_ACCESS"
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have access to this company"


class NoCompanyAssigned(AppError):
    code = "NO_COMPANY"
    kind = ErrorKind.FORBIDDEN
    default_message = "User is not assigned to any company"


# ==================== DATA ====================

class NotFound(AppError):
    code = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND
    default_message = "Record not found"


class InvalidStatus(AppError):
    code = "INVALID_STATUS"
    kind = ErrorKind.CONFLICT
    default_message = "Operation not allowed in the current status"


class Overpayment(AppError):
    code = "OVERPAYMENT"
    kind = ErrorKind.VALIDATION
    default_message = "Payment amount exceeds remaining balance"


class Duplicate(AppError):
    code = "DUPLICATE"
    kind = ErrorKind.CONFLICT
    default_message = "Duplicate value"


class ConcurrentModification(AppError):
    code = "CONCURRENT_MODIFICATION"
    kind = ErrorKind.CONFLICT
    default_message = "Record was modified by another request, please retry"


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    kind = ErrorKind.VALIDATION
    default_message = "Validation failed"


class InternalError(AppError):
    pass
