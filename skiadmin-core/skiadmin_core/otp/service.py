"""
OTP Service
===========
High-level generation and verification of one-time codes.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core import metrics
from .models import (
    GeneratedOTP,
    OTPConfig,
    OTPEntry,
    OTPFailure,
    OTPPurpose,
    OTPVerifyResult,
)
from .hashing import generate_otp, generate_salt, hash_otp, normalize_contact, verify_otp_hash
from .store import OTPStore

logger = structlog.get_logger(__name__)


class OTPService:
    """Issues hashed one-time codes and verifies guesses against them."""

    def __init__(
        self,
        store: OTPStore,
        config: Optional[OTPConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config or OTPConfig()
        self._clock = clock

    async def generate(
        self,
        user_id: str,
        purpose: OTPPurpose,
        contact: str,
        length: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> GeneratedOTP:
        """
        Generate a code and store only its salted hash.

        Any live code for the same ``(user_id, purpose)`` is superseded.

        Args:
            user_id: Principal the code is for
            purpose: What the code verifies
            contact: E-mail address or phone number it is delivered to
            length: Number of digits (defaults to config)
            ttl: Lifetime (defaults to config, 24h for admin invitations)
            ip_address: Requesting client address, kept for audit
            user_agent: Requesting client agent, kept for audit

        Returns:
            The plaintext code (for delivery only) and its expiry
        """
        code = generate_otp(length or self.config.length)
        salt = generate_salt()
        now = self._clock()
        lifetime = ttl or timedelta(seconds=self.config.expiry_for(purpose))

        entry = OTPEntry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            purpose=purpose,
            contact=normalize_contact(contact),
            code_hash=hash_otp(code, salt),
            salt=salt,
            created_at=now,
            expires_at=now + lifetime,
            attempts_max=self.config.max_attempts,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.store.replace(entry)
        metrics.OTP_ISSUED.labels(purpose=purpose.value).inc()

        logger.info(
            "OTP issued",
            user_id=user_id,
            purpose=purpose.value,
            entry_id=entry.id,
            expires_in=int(lifetime.total_seconds()),
        )
        return GeneratedOTP(code=code, expires_at=entry.expires_at)

    async def verify(
        self,
        user_id: str,
        code: str,
        purpose: OTPPurpose,
        contact: str,
    ) -> OTPVerifyResult:
        """
        Verify a guess against the live code for ``(user_id, purpose)``.

        The whole evaluation runs inside one atomic store update.
        """
        now = self._clock()
        contact = normalize_contact(contact)

        def evaluate(entry: Optional[OTPEntry]) -> Tuple[Optional[OTPEntry], OTPVerifyResult]:
            if entry is None:
                return None, OTPVerifyResult(
                    success=False,
                    message="No active verification code. Please request a new one.",
                    error=OTPFailure.NO_ACTIVE_CODE,
                )

            if entry.is_expired(now):
                return None, OTPVerifyResult(
                    success=False,
                    message="Verification code has expired. Please request a new one.",
                    error=OTPFailure.EXPIRED,
                )

            if entry.contact != contact:
                return entry, OTPVerifyResult(
                    success=False,
                    message="Verification code was not issued for this contact.",
                    error=OTPFailure.CONTACT_MISMATCH,
                )

            if verify_otp_hash(code, entry.salt, entry.code_hash):
                return None, OTPVerifyResult(success=True, message="Verified")

            used = entry.attempts_used + 1
            if used >= entry.attempts_max:
                return None, OTPVerifyResult(
                    success=False,
                    message="Too many attempts. Please request a new code.",
                    error=OTPFailure.TOO_MANY_ATTEMPTS,
                    attempts_remaining=0,
                )

            remaining = entry.attempts_max - used
            return replace(entry, attempts_used=used), OTPVerifyResult(
                success=False,
                message=f"Invalid code. {remaining} attempt(s) remaining.",
                error=OTPFailure.INVALID_CODE,
                attempts_remaining=remaining,
            )

        result = await self.store.update(user_id, purpose, evaluate)

        outcome = "success" if result.success else result.error.value
        metrics.OTP_VERIFICATIONS.labels(purpose=purpose.value, outcome=outcome).inc()
        if result.success:
            logger.info("OTP verified", user_id=user_id, purpose=purpose.value)
        else:
            logger.warning(
                "OTP verification failed",
                user_id=user_id,
                purpose=purpose.value,
                reason=outcome,
                remaining=result.attempts_remaining,
            )
        return result

    async def exists(self, user_id: str, purpose: OTPPurpose, contact: str) -> bool:
        """Check for a live code without consuming an attempt."""
        entry = await self.store.get(user_id, purpose)
        if entry is None or entry.is_expired(self._clock()):
            return False
        return entry.contact == normalize_contact(contact)

    async def cleanup(self) -> int:
        """Purge expired codes; meant for an external cron job."""
        removed = await self.store.purge_expired(self._clock())
        logger.info("Expired OTP codes purged", count=removed)
        return removed
