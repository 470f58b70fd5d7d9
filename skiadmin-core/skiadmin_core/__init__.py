"""
Ski Admin Core Library
======================
Credential bootstrap, one-time codes and failed-attempt lockout for the
Ski Admin auth service.
"""

__version__ = "0.1.0"

# Configuration
from skiadmin_core.config import Settings, utcnow

# Errors
from skiadmin_core.errors import (
    SetupAuthError,
    ConfigurationError,
    StoreUnavailable,
    error_response,
    to_http_exception,
)

# Setup Tokens
from skiadmin_core.tokens import (
    SetupTokenCodec,
    SetupTokenType,
    SetupTokenPayload,
    TokenVerificationResult,
)

# Replay Protection
from skiadmin_core.replay import ReplayGuard, ConsumptionStore

# OTP
from skiadmin_core.otp import OTPService, OTPPurpose, OTPConfig, OTPVerifyResult

# Rate Limiting
from skiadmin_core.rate_limit import (
    FailedAttemptLimiter,
    InMemoryFailedAttemptLimiter,
    RedisFailedAttemptLimiter,
    SQLFailedAttemptLimiter,
    OTPRequestThrottle,
    RateLimitInfo,
)

# Password
from skiadmin_core.password import hash_password, verify_password, PasswordPolicy

# Bootstrap
from skiadmin_core.bootstrap import SetupFlow, BootstrapState, ProfileStore, Profile

# Notifications
from skiadmin_core.notifications import Notifier, Notification, DeliveryResult

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "utcnow",
    # Errors
    "SetupAuthError",
    "ConfigurationError",
    "StoreUnavailable",
    "error_response",
    "to_http_exception",
    # Setup Tokens
    "SetupTokenCodec",
    "SetupTokenType",
    "SetupTokenPayload",
    "TokenVerificationResult",
    # Replay Protection
    "ReplayGuard",
    "ConsumptionStore",
    # OTP
    "OTPService",
    "OTPPurpose",
    "OTPConfig",
    "OTPVerifyResult",
    # Rate Limiting
    "FailedAttemptLimiter",
    "InMemoryFailedAttemptLimiter",
    "RedisFailedAttemptLimiter",
    "SQLFailedAttemptLimiter",
    "OTPRequestThrottle",
    "RateLimitInfo",
    # Password
    "hash_password",
    "verify_password",
    "PasswordPolicy",
    # Bootstrap
    "SetupFlow",
    "BootstrapState",
    "ProfileStore",
    "Profile",
    # Notifications
    "Notifier",
    "Notification",
    "DeliveryResult",
]
