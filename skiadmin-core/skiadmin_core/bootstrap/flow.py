"""
Setup Flow
==========
Orchestrates first-time credential setup from an invitation token.

Ordering matters: every read-only check and the password policy run before
the token is burned, and the token is burned before the credential write,
so of two concurrent submissions exactly one reaches the credential store.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional
import structlog

from skiadmin_core.config import utcnow
from skiadmin_core import metrics
from skiadmin_core.errors import (
    AlreadyCompleted,
    AlreadyConsumed,
    NotFound,
    SetupAuthError,
    TokenMismatch,
)
from skiadmin_core.notifications import (
    DeliveryMethod,
    DeliveryResult,
    Notification,
    Notifier,
    render_invitation_message,
)
from skiadmin_core.password import PasswordPolicy, hash_password
from skiadmin_core.replay import ReplayGuard
from skiadmin_core.tokens import SetupTokenCodec, SetupTokenType
from .models import BootstrapState, SetupPrincipal
from .profiles import ProfileStore

logger = structlog.get_logger(__name__)


class SetupFlow:
    """Verifies setup tokens and exchanges them for a password."""

    def __init__(
        self,
        codec: SetupTokenCodec,
        guard: ReplayGuard,
        profiles: ProfileStore,
        password_policy: Optional[PasswordPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        hasher: Callable[[str], Awaitable[str]] = hash_password,
        token_ttl: timedelta = timedelta(hours=24),
    ):
        self.codec = codec
        self.guard = guard
        self.profiles = profiles
        self.password_policy = password_policy or PasswordPolicy()
        self._clock = clock
        self._hash = hasher
        self.token_ttl = token_ttl

    async def verify_setup_token(self, token: str) -> SetupPrincipal:
        """
        Check a token without consuming it.

        Raises:
            MalformedToken, InvalidSignature, TokenExpired: codec rejected it
            AlreadyConsumed: the token was already used
            NotFound: the principal no longer exists
            AlreadyCompleted: the principal already finished setup
        """
        try:
            principal = await self._verify(token)
        except SetupAuthError as e:
            metrics.TOKEN_VERIFICATIONS.labels(outcome=e.code.lower()).inc()
            raise
        metrics.TOKEN_VERIFICATIONS.labels(outcome="valid").inc()
        return principal

    async def _verify(self, token: str) -> SetupPrincipal:
        payload = self.codec.verify_or_raise(token)

        if await self.guard.is_consumed(payload.jti):
            logger.warning("Setup token replayed", user_id=payload.user_id)
            raise AlreadyConsumed()

        profile = await self.profiles.get_profile(payload.user_id)
        if profile is None:
            raise NotFound()

        if profile.is_verified:
            raise AlreadyCompleted()

        return SetupPrincipal(
            user_id=payload.user_id,
            email=payload.email,
            role=profile.role,
            club_id=payload.club_id or profile.club_id,
            token_type=payload.type.value,
            jti=payload.jti,
        )

    async def setup_password(self, user_id: str, token: str, password: str) -> BootstrapState:
        """
        Set the first password for the token's principal.

        Raises:
            TokenMismatch: the token belongs to someone else
            WeakCredential: the password fails the policy; nothing is consumed
            AlreadyConsumed: a concurrent caller burned the token first
            plus everything verify_setup_token raises
        """
        principal = await self.verify_setup_token(token)

        if principal.user_id != user_id:
            logger.warning("Setup token user mismatch", user_id=user_id)
            raise TokenMismatch()

        self.password_policy.validate(password)
        password_hash = await self._hash(password)

        await self.guard.mark_consumed(principal.jti, principal.user_id, principal.token_type)
        logger.info("Setup token accepted", user_id=user_id, state=BootstrapState.TOKEN_VERIFIED_PENDING.value)

        await self.profiles.set_credential(user_id, password_hash)
        logger.info("Credential set", user_id=user_id, state=BootstrapState.CREDENTIAL_SET.value)

        await self.profiles.mark_verified(user_id, self._clock(), principal.jti)
        logger.info("Profile verified", user_id=user_id, state=BootstrapState.PROFILE_VERIFIED.value)

        return BootstrapState.PROFILE_VERIFIED

    async def issue_invitation(
        self,
        user_id: str,
        email: str,
        notifier: Notifier,
        setup_url: str,
        club_id: Optional[str] = None,
        club_name: str = "Ski Admin",
        ttl: Optional[timedelta] = None,
    ) -> DeliveryResult:
        """
        Issue an ``admin_setup`` token and e-mail the setup link.

        Args:
            user_id: Invited principal, whose profile must already exist
            email: Where the link is sent
            notifier: Delivery channel
            setup_url: Page that accepts ``?token=``
            club_id: Optional tenant scope carried in the token
            club_name: Shown in the message
            ttl: Token lifetime, defaults to the flow's token_ttl
        """
        token = self.codec.issue(
            user_id,
            email,
            token_type=SetupTokenType.ADMIN_SETUP,
            club_id=club_id,
            ttl=ttl or self.token_ttl,
        )
        link = f"{setup_url}?token={token}"

        result = await notifier.send(Notification(
            method=DeliveryMethod.EMAIL,
            recipient=email,
            subject=f"Admin Invitation - {club_name}",
            body=render_invitation_message(link, club_name),
        ))
        if result.success:
            logger.info("Invitation sent", user_id=user_id, state=BootstrapState.TOKEN_ISSUED.value)
        else:
            logger.error("Invitation delivery failed", user_id=user_id, error=result.error)
        return result
