"""Error taxonomy and response normalization for apiforge.

Every failure that reaches a client is rendered with the same body shape:

    {"error": {"code": "NOT_FOUND", "message": "...", "details": [...]}}

The HTTP status is derived 1:1 from the code. Validation and rule failures
are turned into responses by the pipeline before the driver is called;
anything raised past that point goes through handle_error() exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apiforge.api.types import ApiResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Wire-level error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status(self) -> int:
        return _STATUS_BY_CODE[self]


_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class FieldError:
    """A single field-attributed validation failure.

    Attributes:
        field: Field (or foreign key) name the error relates to
        message: Human-readable message ("Required", "Must be a string", ...)
    """

    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message}


# =============================================================================
# Exceptions
# =============================================================================


class ApiError(Exception):
    """Base class for errors that map directly to an error response."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        details: list[FieldError] | None = None,
    ):
        self.message = message or self.default_message
        self.details = list(details or [])
        super().__init__(self.message)

    @property
    def status(self) -> int:
        return self.code.status


class ValidationError(ApiError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"


class UnauthorizedError(ApiError):
    code = ErrorCode.UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(ApiError):
    code = ErrorCode.FORBIDDEN
    default_message = "Permission denied"


class NotFoundError(ApiError):
    code = ErrorCode.NOT_FOUND
    default_message = "Not found"


class ConflictError(ApiError):
    code = ErrorCode.CONFLICT
    default_message = "Resource already exists"


class InternalError(ApiError):
    code = ErrorCode.INTERNAL_ERROR
    default_message = "Internal server error"


class DriverErrorCode(str, Enum):
    """Persistence failures a driver can report."""

    UNIQUE_VIOLATION = "unique_violation"
    RECORD_NOT_FOUND = "record_not_found"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"


class DriverError(Exception):
    """Raised by drivers for constraint and missing-record failures."""

    def __init__(self, code: DriverErrorCode, message: str = ""):
        self.code = code
        super().__init__(message or code.value)


class PluginError(Exception):
    """Structural plugin-system failure (registration, dependencies, definition)."""


class PluginInitializationError(PluginError):
    """A plugin's lifecycle initialization raised."""

    def __init__(self, plugin_id: str, cause: BaseException):
        self.plugin_id = plugin_id
        super().__init__(f'Failed to initialize plugin "{plugin_id}": {cause}')


# Prisma-compatible codes, accepted from any exception carrying a `code`
_FOREIGN_DRIVER_CODES = {
    "P2002": DriverErrorCode.UNIQUE_VIOLATION,
    "P2025": DriverErrorCode.RECORD_NOT_FOUND,
    "P2003": DriverErrorCode.FOREIGN_KEY_VIOLATION,
}


# =============================================================================
# Response builders
# =============================================================================


def error_response(
    code: ErrorCode,
    message: str,
    details: list[FieldError] | None = None,
) -> ApiResponse:
    """Build an error response with the stable wire shape."""
    from apiforge.api.types import ApiResponse

    error: dict[str, Any] = {"code": code.value, "message": message}
    if details:
        error["details"] = [d.to_dict() for d in details]
    return ApiResponse(status=code.status, body={"error": error})


def validation_error(errors: list[FieldError]) -> ApiResponse:
    return error_response(ErrorCode.VALIDATION_ERROR, "Validation failed", errors)


def unauthorized_error(message: str = "Authentication required") -> ApiResponse:
    return error_response(ErrorCode.UNAUTHORIZED, message)


def forbidden_error(message: str = "Permission denied") -> ApiResponse:
    return error_response(ErrorCode.FORBIDDEN, message)


def not_found_error(message: str = "Not found") -> ApiResponse:
    return error_response(ErrorCode.NOT_FOUND, message)


def conflict_error(message: str = "Resource already exists") -> ApiResponse:
    return error_response(ErrorCode.CONFLICT, message)


def internal_error(message: str = "Internal server error") -> ApiResponse:
    return error_response(ErrorCode.INTERNAL_ERROR, message)


def _driver_code(error: BaseException) -> DriverErrorCode | None:
    if isinstance(error, DriverError):
        return error.code
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return _FOREIGN_DRIVER_CODES.get(code)
    return None


def handle_error(error: BaseException, production: bool = False) -> ApiResponse:
    """Convert any exception into an error response.

    Args:
        error: The exception raised somewhere in the pipeline
        production: When True, messages of unexpected errors are replaced
            with a generic one so internals are not leaked

    Returns:
        The normalized error response
    """
    if isinstance(error, ApiError):
        return error_response(error.code, error.message, error.details)

    driver_code = _driver_code(error)
    if driver_code is DriverErrorCode.UNIQUE_VIOLATION:
        return conflict_error("Resource already exists")
    if driver_code is DriverErrorCode.RECORD_NOT_FOUND:
        return not_found_error()
    if driver_code is DriverErrorCode.FOREIGN_KEY_VIOLATION:
        return validation_error(
            [FieldError(field="relation", message="Related resource not found")]
        )

    logger.exception("Unhandled error while processing request", exc_info=error)
    if production:
        return internal_error("Internal server error")
    return internal_error(str(error) or "Unknown error")
