"""
Standardized error response utilities for the loyalty API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE",
        "details": [...]          # only for validation failures
    }
}

Usage:
    from qrloyalty.utils.errors import error_response, ErrorCode

    return error_response("Template not found", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

from .exceptions import (
    QRLoyaltyError,
    NotFoundError,
    ExpiredError,
    ValidationError,
    InsufficientPointsError,
    ExternalSyncFailure,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication & Authorization (401, 403)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Not Found / Gone (404, 410)
    NOT_FOUND = "NOT_FOUND"
    SHOP_NOT_FOUND = "SHOP_NOT_FOUND"
    EXPIRED = "EXPIRED"

    # Business Logic Errors (400)
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"

    # External Service Errors (502)
    EXTERNAL_SYNC_FAILURE = "EXTERNAL_SYNC_FAILURE"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[list] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Optional per-field details returned to the caller

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}")
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}")

    body = {
        "message": message,
        "code": code.value if isinstance(code, ErrorCode) else code
    }
    if details:
        body["details"] = details

    return jsonify({"error": body}), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Authentication required", code: ErrorCode = ErrorCode.AUTH_REQUIRED) -> tuple:
    """401 Unauthorized error."""
    return error_response(message, code, 401, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred") -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True)


def exception_response(exc: QRLoyaltyError) -> tuple:
    """Map a business exception onto the standard error envelope."""
    if isinstance(exc, ValidationError):
        return error_response(exc.message, ErrorCode.VALIDATION_ERROR, 400,
                              log_error=False, details=exc.errors)
    if isinstance(exc, InsufficientPointsError):
        return error_response(exc.message, ErrorCode.INSUFFICIENT_POINTS, 400, log_error=False)
    if isinstance(exc, NotFoundError):
        return not_found(exc.message)
    if isinstance(exc, ExpiredError):
        return error_response(exc.message, ErrorCode.EXPIRED, 410, log_error=False)
    if isinstance(exc, ExternalSyncFailure):
        return error_response(exc.message, ErrorCode.EXTERNAL_SYNC_FAILURE, 502)
    return internal_error(exc.message)
