"""
OTP Models
==========
Data models and enums for one-time code generation and verification.
"""

from datetime import datetime
from typing import Optional
from dataclasses import dataclass
from enum import Enum

from skiadmin_core.errors import (
    ContactMismatch,
    InvalidCode,
    InvalidRequest,
    NoActiveCode,
    SetupAuthError,
    TokenExpired,
    TooManyAttempts,
)


class OTPPurpose(str, Enum):
    """What a one-time code is verifying."""
    EMAIL_VERIFICATION = "email_verification"
    PHONE_VERIFICATION = "phone_verification"
    ADMIN_INVITATION = "admin_invitation"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_LOGIN = "2fa_login"

    @classmethod
    def parse(cls, value: str) -> "OTPPurpose":
        """Validate a tag received from outside the core."""
        try:
            return cls(value)
        except ValueError:
            raise InvalidRequest("Invalid OTP type")

    @property
    def is_phone(self) -> bool:
        return self is OTPPurpose.PHONE_VERIFICATION


class OTPFailure(str, Enum):
    """Verification failure reasons."""
    NO_ACTIVE_CODE = "no_active_code"
    EXPIRED = "expired"
    CONTACT_MISMATCH = "contact_mismatch"
    INVALID_CODE = "invalid_code"
    TOO_MANY_ATTEMPTS = "too_many_attempts"


_FAILURE_ERRORS = {
    OTPFailure.NO_ACTIVE_CODE: NoActiveCode,
    OTPFailure.EXPIRED: TokenExpired,
    OTPFailure.CONTACT_MISMATCH: ContactMismatch,
    OTPFailure.INVALID_CODE: InvalidCode,
    OTPFailure.TOO_MANY_ATTEMPTS: TooManyAttempts,
}


@dataclass
class OTPConfig:
    """Configuration for OTP generation."""
    length: int = 6
    expiry_seconds: int = 600  # 10 minutes
    admin_invitation_expiry_seconds: int = 86400  # 24 hours
    max_attempts: int = 3

    def expiry_for(self, purpose: OTPPurpose) -> int:
        if purpose is OTPPurpose.ADMIN_INVITATION:
            return self.admin_invitation_expiry_seconds
        return self.expiry_seconds


@dataclass(frozen=True)
class OTPEntry:
    """The single live code for a (user, purpose) pair. Stores only the hash."""
    id: str
    user_id: str
    purpose: OTPPurpose
    contact: str
    code_hash: str
    salt: str
    created_at: datetime
    expires_at: datetime
    attempts_max: int
    attempts_used: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    version: int = 0

    @property
    def attempts_remaining(self) -> int:
        return max(self.attempts_max - self.attempts_used, 0)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class GeneratedOTP:
    """Plaintext code handed back once for out-of-band delivery."""
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class OTPVerifyResult:
    """Outcome of a verification attempt."""
    success: bool
    message: str
    error: Optional[OTPFailure] = None
    attempts_remaining: Optional[int] = None

    def raise_for_failure(self) -> None:
        """Raise the matching core error if this result is a failure."""
        if self.success:
            return
        error_cls = _FAILURE_ERRORS.get(self.error, SetupAuthError)
        raise error_cls(self.message, attemptsRemaining=self.attempts_remaining)
