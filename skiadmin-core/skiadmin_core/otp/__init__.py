"""
OTP Generation and Verification
================================
Hashed one-time codes with expiry and per-code attempt limits.
"""

from .models import (
    OTPPurpose,
    OTPFailure,
    OTPConfig,
    OTPEntry,
    GeneratedOTP,
    OTPVerifyResult,
)
from .hashing import generate_otp, hash_otp, verify_otp_hash, generate_salt, normalize_contact
from .store import OTPStore, InMemoryOTPStore
from .sql_store import SQLOTPStore
from .service import OTPService

__all__ = [
    # Models
    "OTPPurpose",
    "OTPFailure",
    "OTPConfig",
    "OTPEntry",
    "GeneratedOTP",
    "OTPVerifyResult",
    # Hashing
    "generate_otp",
    "hash_otp",
    "verify_otp_hash",
    "generate_salt",
    "normalize_contact",
    # Stores
    "OTPStore",
    "InMemoryOTPStore",
    "SQLOTPStore",
    # Service
    "OTPService",
]
