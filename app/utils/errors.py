"""
Error responses for the referral API.

Every failure leaves the API in one shape:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from app.utils.errors import error_response, ErrorCode

    return error_response("User not found", ErrorCode.USER_NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional, Union

from .exceptions import RewardsError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Codes returned in error bodies. Storefront scripts branch on these."""

    # 401
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_SECRET = "INVALID_SECRET"

    # 400
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_MILESTONE = "INVALID_MILESTONE"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    INSUFFICIENT_REFERRALS = "INSUFFICIENT_REFERRALS"

    # 404
    NOT_FOUND = "NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # 409
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    NO_ACTIVE_DISCOUNT = "NO_ACTIVE_DISCOUNT"
    REFERRAL_CODE_EXHAUSTED = "REFERRAL_CODE_EXHAUSTED"

    # 502
    SHOPIFY_ERROR = "SHOPIFY_ERROR"
    KLAVIYO_ERROR = "KLAVIYO_ERROR"
    JUDGEME_ERROR = "JUDGEME_ERROR"

    # 500
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: Union[ErrorCode, str] = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Build an error body and status.

    Args:
        message: User-friendly error message
        code: ErrorCode member or the code string carried by an exception
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Extra context for the log line only

    Returns:
        Tuple of (response, status_code) for Flask
    """
    code_value = code.value if isinstance(code, ErrorCode) else code

    if log_error and status_code >= 500:
        logger.error(f"API Error [{code_value}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code_value}]: {message}", extra={"details": details})

    return jsonify({"error": {"message": message, "code": code_value}}), status_code


def rewards_error_response(error: RewardsError) -> tuple:
    """Map a rewards exception onto its error response; only 5xx are logged."""
    return error_response(
        error.message,
        error.code,
        error.status_code,
        log_error=error.status_code >= 500
    )


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Unauthorized", code: ErrorCode = ErrorCode.INVALID_SIGNATURE) -> tuple:
    return error_response(message, code, 401, log_error=False)


def not_found(message: str = "Not found", code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "Internal server error") -> tuple:
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500)
