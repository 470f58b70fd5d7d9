"""
Setup Token Codec
=================
Issues and verifies HS256-signed, expiring, single-purpose setup tokens.

The codec is pure: it holds only the signing secret injected at startup and
never touches a store. Single-use enforcement lives in the replay guard.
"""

import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

import jwt
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core.errors import (
    ConfigurationError,
    InvalidSignature,
    MalformedToken,
    SetupAuthError,
    TokenExpired,
)
from .models import SetupTokenPayload, SetupTokenType, TokenError, TokenVerificationResult

logger = structlog.get_logger(__name__)

SIGNING_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ("jti", "userId", "email", "type", "iat", "exp")

_ERRORS = {
    TokenError.MALFORMED_TOKEN: MalformedToken,
    TokenError.INVALID_SIGNATURE: InvalidSignature,
    TokenError.EXPIRED: TokenExpired,
}


def generate_jti(token_type: SetupTokenType, user_id: str, now: datetime) -> str:
    """Unique token identifier: type, user, issue time in ms and a random suffix."""
    millis = int(now.timestamp() * 1000)
    return f"{token_type.value}_{user_id}_{millis}_{secrets.token_hex(8)}"


class SetupTokenCodec:
    """Signs and verifies setup tokens with a process-wide secret."""

    def __init__(
        self,
        secret: str,
        issuer: str = "ski-admin",
        audience: str = "setup-flow",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ConfigurationError("JWT_SECRET_KEY is required for setup tokens")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self._clock = clock

    def issue(
        self,
        user_id: str,
        email: str,
        token_type: SetupTokenType = SetupTokenType.ADMIN_SETUP,
        club_id: Optional[str] = None,
        ttl: timedelta = timedelta(hours=24),
    ) -> str:
        """
        Issue a signed setup token.

        Args:
            user_id: Principal the token is issued to
            email: Principal email (stored lower-cased)
            token_type: Purpose of the token
            club_id: Optional tenant scope
            ttl: Lifetime from now

        Returns:
            Encoded token string
        """
        if ttl.total_seconds() <= 0:
            raise ValueError("ttl must be positive")

        now = self._clock().replace(microsecond=0)
        payload = SetupTokenPayload(
            jti=generate_jti(token_type, user_id, now),
            user_id=user_id,
            email=email.lower(),
            type=token_type,
            issued_at=now,
            expires_at=now + ttl,
            club_id=club_id,
        )
        claims = payload.to_claims()
        claims["iss"] = self.issuer
        claims["aud"] = self.audience

        token = jwt.encode(claims, self._secret, algorithm=SIGNING_ALGORITHM)
        logger.info(
            "Setup token issued",
            user_id=user_id,
            token_type=token_type.value,
            expires_at=payload.expires_at.isoformat(),
        )
        return token

    def verify(self, token: str) -> TokenVerificationResult:
        """
        Verify signature, structure and expiry of a token.

        Never raises for bad input; the failure is reported in the result.
        """
        if not token or not isinstance(token, str):
            return TokenVerificationResult(valid=False, error=TokenError.MALFORMED_TOKEN)

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[SIGNING_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": list(REQUIRED_CLAIMS),
                },
            )
        except jwt.InvalidSignatureError:
            logger.warning("Setup token signature mismatch")
            return TokenVerificationResult(valid=False, error=TokenError.INVALID_SIGNATURE)
        except jwt.InvalidTokenError as e:
            logger.warning("Setup token malformed", error=type(e).__name__)
            return TokenVerificationResult(valid=False, error=TokenError.MALFORMED_TOKEN)

        try:
            payload = SetupTokenPayload.from_claims(claims)
        except (KeyError, TypeError, ValueError, OverflowError):
            return TokenVerificationResult(valid=False, error=TokenError.MALFORMED_TOKEN)

        if payload.expires_at <= payload.issued_at:
            return TokenVerificationResult(valid=False, error=TokenError.MALFORMED_TOKEN)

        # Expired once now reaches exp
        if self._clock() >= payload.expires_at:
            logger.info("Setup token expired", jti=payload.jti)
            return TokenVerificationResult(valid=False, error=TokenError.EXPIRED)

        return TokenVerificationResult(valid=True, payload=payload)

    def verify_or_raise(self, token: str) -> SetupTokenPayload:
        """Verify a token, raising the matching error on failure."""
        result = self.verify(token)
        if not result.valid or result.payload is None:
            error_cls = _ERRORS.get(result.error, SetupAuthError)
            raise error_cls()
        return result.payload
