"""
Core Configuration
==================
Settings loaded once from the environment at startup.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from skiadmin_core.errors import ConfigurationError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration. Read-only after startup."""
    jwt_secret_key: str = ""
    token_issuer: str = "ski-admin"
    token_audience: str = "setup-flow"
    setup_token_ttl_hours: int = 24
    otp_length: int = 6
    otp_expiry_minutes: int = 10
    otp_admin_invitation_expiry_hours: int = 24
    otp_max_attempts: int = 3
    failed_otp_threshold: int = 5
    failed_otp_window_minutes: int = 1440
    password_min_length: int = 12
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_messaging_service_sid: Optional[str] = None
    environment: str = "production"
    app_url: str = "http://localhost:3000"
    service_name: str = field(default="skiadmin-auth")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            jwt_secret_key=os.environ.get("JWT_SECRET_KEY", ""),
            token_issuer=os.environ.get("TOKEN_ISSUER", "ski-admin"),
            token_audience=os.environ.get("TOKEN_AUDIENCE", "setup-flow"),
            setup_token_ttl_hours=_env_int("SETUP_TOKEN_TTL_HOURS", 24),
            otp_length=_env_int("OTP_LENGTH", 6),
            otp_expiry_minutes=_env_int("OTP_EXPIRY_MINUTES", 10),
            otp_admin_invitation_expiry_hours=_env_int("OTP_ADMIN_INVITATION_EXPIRY_HOURS", 24),
            otp_max_attempts=_env_int("OTP_MAX_ATTEMPTS", 3),
            failed_otp_threshold=_env_int("MAX_FAILED_OTP_PER_WINDOW", 5),
            failed_otp_window_minutes=_env_int("FAILED_OTP_WINDOW_MINUTES", 1440),
            password_min_length=_env_int("PASSWORD_MIN_LENGTH", 12),
            database_url=os.environ.get("DATABASE_URL") or None,
            redis_url=os.environ.get("REDIS_URL") or None,
            twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN") or None,
            twilio_phone_number=os.environ.get("TWILIO_PHONE_NUMBER") or None,
            twilio_messaging_service_sid=os.environ.get("TWILIO_MESSAGING_SERVICE_SID") or None,
            environment=os.environ.get("ENVIRONMENT", os.environ.get("NODE_ENV", "production")),
            app_url=os.environ.get("APP_URL", "http://localhost:3000"),
            service_name=os.environ.get("SERVICE_NAME", "skiadmin-auth"),
        )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def sms_enabled(self) -> bool:
        """SMS goes out through Twilio once both credentials are set."""
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    def validate(self) -> "Settings":
        """
        Fail fast if required settings are missing or inconsistent.

        Raises:
            ConfigurationError: listing every problem found
        """
        problems: List[str] = []
        if not self.jwt_secret_key:
            problems.append("JWT_SECRET_KEY is required")
        if self.otp_length < 4:
            problems.append("OTP_LENGTH must be at least 4")
        if self.otp_max_attempts < 1:
            problems.append("OTP_MAX_ATTEMPTS must be at least 1")
        if self.failed_otp_threshold < 1:
            problems.append("MAX_FAILED_OTP_PER_WINDOW must be at least 1")
        if self.failed_otp_window_minutes < 1:
            problems.append("FAILED_OTP_WINDOW_MINUTES must be at least 1")
        if bool(self.twilio_account_sid) != bool(self.twilio_auth_token):
            problems.append("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set together")
        if self.sms_enabled and not (self.twilio_phone_number or self.twilio_messaging_service_sid):
            problems.append("TWILIO_PHONE_NUMBER or TWILIO_MESSAGING_SERVICE_SID is required for SMS")
        if not self.app_url.startswith(("http://", "https://")):
            problems.append("APP_URL is not a valid URL")

        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))
        return self
