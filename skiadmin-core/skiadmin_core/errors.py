"""
Setup & Verification Errors
===========================
Error taxonomy for token, OTP and bootstrap failures.

Every failure carries a stable machine code, a user-facing message and the
HTTP status the caller should answer with. Technical details are logged,
never returned to the client.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class SetupAuthError(Exception):
    """Base class for credential bootstrap and verification failures."""

    code: str = "SETUP_AUTH_ERROR"
    status_code: int = 400
    message: str = "Request could not be completed"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""
    pass


class InvalidRequest(SetupAuthError):
    code = "INVALID_REQUEST"
    message = "Invalid request"


class MalformedToken(SetupAuthError):
    code = "MALFORMED_TOKEN"
    status_code = 401
    message = "Invalid token"


class InvalidSignature(SetupAuthError):
    code = "INVALID_SIGNATURE"
    status_code = 401
    message = "Invalid token signature"


class TokenExpired(SetupAuthError):
    code = "EXPIRED"
    status_code = 401
    message = "Token has expired"


class AlreadyConsumed(SetupAuthError):
    code = "ALREADY_CONSUMED"
    status_code = 401
    message = "Token has already been used"


class AlreadyCompleted(SetupAuthError):
    code = "ALREADY_COMPLETED"
    message = "Setup already completed. Please log in."


class TokenMismatch(SetupAuthError):
    code = "TOKEN_MISMATCH"
    status_code = 401
    message = "Token mismatch"


class WeakCredential(SetupAuthError):
    code = "WEAK_CREDENTIAL"
    message = "Password does not meet the strength policy"


class NoActiveCode(SetupAuthError):
    code = "NO_ACTIVE_CODE"
    message = "No active verification code. Please request a new one."


class ContactMismatch(SetupAuthError):
    code = "CONTACT_MISMATCH"
    message = "Verification code was not issued for this contact"


class InvalidCode(SetupAuthError):
    code = "INVALID_CODE"
    message = "Invalid verification code"


class TooManyAttempts(SetupAuthError):
    code = "TOO_MANY_ATTEMPTS"
    message = "Too many attempts. Please request a new code."


class Locked(SetupAuthError):
    code = "LOCKED"
    status_code = 429
    message = "Account temporarily locked due to too many failed attempts"

    def __init__(self, reset_at: Optional[datetime] = None, message: Optional[str] = None):
        super().__init__(
            message,
            locked=True,
            resetAt=reset_at.isoformat() if reset_at else None,
        )
        self.reset_at = reset_at


class RateLimited(SetupAuthError):
    code = "RATE_LIMITED"
    status_code = 429
    message = "Too many requests. Please try again later."

    def __init__(self, reset_at: Optional[datetime] = None, message: Optional[str] = None):
        super().__init__(message, resetAt=reset_at.isoformat() if reset_at else None)
        self.reset_at = reset_at


class NotFound(SetupAuthError):
    code = "NOT_FOUND"
    status_code = 404
    message = "User not found"


class DeliveryFailed(SetupAuthError):
    code = "DELIVERY_FAILED"
    status_code = 500
    message = "Failed to send verification code"


class StoreUnavailable(SetupAuthError):
    """Transient backing-store failure. The only class a caller may retry."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
    message = "Service temporarily unavailable. Please try again."
    retryable = True


def to_http_exception(error: SetupAuthError, log_detail: Optional[str] = None) -> HTTPException:
    """
    Convert a core error into a FastAPI HTTPException.

    Args:
        error: The raised core error
        log_detail: Technical message for logs (not shown to the user)

    Returns:
        HTTPException carrying the structured error body
    """
    _log_error(error, log_detail)
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def error_response(error: SetupAuthError, log_detail: Optional[str] = None) -> JSONResponse:
    """Convert a core error into a JSONResponse with the structured body."""
    _log_error(error, log_detail)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def _log_error(error: SetupAuthError, log_detail: Optional[str]) -> None:
    if error.status_code >= 500:
        logger.error("Setup auth failure", code=error.code, detail=log_detail)
    else:
        logger.warning("Setup auth rejected", code=error.code, detail=log_detail)
