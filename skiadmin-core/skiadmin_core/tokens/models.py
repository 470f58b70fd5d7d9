"""
Setup Token Models
==================
Data models and enums for signed setup tokens.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dataclasses import dataclass
from enum import Enum


class SetupTokenType(str, Enum):
    """Purposes a setup token can be issued for."""
    ADMIN_SETUP = "admin_setup"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class TokenError(str, Enum):
    """Verification failure codes."""
    MALFORMED_TOKEN = "MALFORMED_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class SetupTokenPayload:
    """Decoded contents of a setup token."""
    jti: str
    user_id: str
    email: str
    type: SetupTokenType
    issued_at: datetime
    expires_at: datetime
    club_id: Optional[str] = None

    def to_claims(self) -> Dict[str, Any]:
        claims: Dict[str, Any] = {
            "jti": self.jti,
            "userId": self.user_id,
            "email": self.email,
            "type": self.type.value,
            "iat": int(self.issued_at.timestamp()),
            "exp": int(self.expires_at.timestamp()),
        }
        if self.club_id is not None:
            claims["clubId"] = self.club_id
        return claims

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "SetupTokenPayload":
        return cls(
            jti=claims["jti"],
            user_id=claims["userId"],
            email=claims["email"],
            type=SetupTokenType(claims["type"]),
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            club_id=claims.get("clubId"),
        )


@dataclass
class TokenVerificationResult:
    """Result of verifying a setup token."""
    valid: bool
    payload: Optional[SetupTokenPayload] = None
    error: Optional[TokenError] = None
