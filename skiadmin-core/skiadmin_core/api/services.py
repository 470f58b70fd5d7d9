"""
Service Container
=================
Wires the core components from settings. Built once at startup and handed
to the router; nothing here is created lazily per request.
"""

from dataclasses import dataclass
from functools import partial
from datetime import datetime, timedelta
from typing import Callable, Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine
import structlog

from skiadmin_core.bootstrap import InMemoryProfileStore, ProfileStore, SetupFlow, SQLProfileStore
from skiadmin_core.config import Settings, utcnow
from skiadmin_core.database import create_async_engine, session_factory_for
from skiadmin_core.errors import ConfigurationError
from skiadmin_core.notifications import (
    DeliveryMethod,
    LoggingNotifier,
    Notifier,
    RoutingNotifier,
    TwilioSMSNotifier,
)
from skiadmin_core.otp import InMemoryOTPStore, OTPConfig, OTPService, SQLOTPStore
from skiadmin_core.password import PasswordPolicy
from skiadmin_core.rate_limit import (
    FailedAttemptLimiter,
    InMemoryFailedAttemptLimiter,
    OTPRequestThrottle,
    RedisFailedAttemptLimiter,
    RedisRequestRateLimiter,
    SQLFailedAttemptLimiter,
    SQLRequestRateLimiter,
)
from skiadmin_core.replay import (
    InMemoryConsumptionStore,
    RedisConsumptionStore,
    ReplayGuard,
    SQLConsumptionStore,
)
from skiadmin_core.tokens import SetupTokenCodec

logger = structlog.get_logger(__name__)


def _otp_config(settings: Settings) -> OTPConfig:
    return OTPConfig(
        length=settings.otp_length,
        expiry_seconds=settings.otp_expiry_minutes * 60,
        admin_invitation_expiry_seconds=settings.otp_admin_invitation_expiry_hours * 3600,
        max_attempts=settings.otp_max_attempts,
    )


@dataclass
class AuthServices:
    """Everything the auth endpoints need, wired and ready."""
    settings: Settings
    setup_flow: SetupFlow
    otp: OTPService
    failed_attempts: FailedAttemptLimiter
    throttle: OTPRequestThrottle
    notifier: Notifier
    engine: Optional[AsyncEngine] = None
    redis: Optional[Redis] = None

    @classmethod
    def in_memory(
        cls,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        profiles: Optional[ProfileStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "AuthServices":
        """
        Single-process wiring for development and tests.

        Every instance keeps its own replay and lockout state, so this must
        not back a multi-instance deployment.
        """
        settings.validate()
        window = timedelta(minutes=settings.failed_otp_window_minutes)
        return cls(
            settings=settings,
            setup_flow=SetupFlow(
                codec=_codec(settings, clock),
                guard=ReplayGuard(InMemoryConsumptionStore(), clock=clock),
                profiles=profiles or InMemoryProfileStore(),
                password_policy=PasswordPolicy(min_length=settings.password_min_length),
                clock=clock,
                token_ttl=timedelta(hours=settings.setup_token_ttl_hours),
            ),
            otp=OTPService(InMemoryOTPStore(), _otp_config(settings), clock=clock),
            failed_attempts=InMemoryFailedAttemptLimiter(settings.failed_otp_threshold, window, clock=clock),
            throttle=OTPRequestThrottle(clock=clock),
            notifier=notifier or LoggingNotifier(),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        engine: Optional[AsyncEngine] = None,
        redis_client: Optional[Redis] = None,
    ) -> "AuthServices":
        """
        Production wiring on the shared stores.

        Profiles and one-time codes live in the database. Consumed tokens, the
        failed-attempt counter and the send throttle live in Redis when
        configured, otherwise in the database. SMS goes through Twilio when
        its credentials are set; e-mail is logged.

        Raises:
            ConfigurationError: settings are invalid or no database is configured
        """
        settings.validate()
        if engine is None:
            if not settings.database_url:
                raise ConfigurationError("DATABASE_URL is required outside development")
            engine = create_async_engine(settings.database_url)
        if redis_client is None and settings.redis_url:
            redis_client = Redis.from_url(settings.redis_url, decode_responses=True)

        sessions = session_factory_for(engine)
        window = timedelta(minutes=settings.failed_otp_window_minutes)

        if redis_client is not None:
            consumption_store = RedisConsumptionStore(redis_client)
            failed_attempts = RedisFailedAttemptLimiter(redis_client, settings.failed_otp_threshold, window)
            request_limiter = partial(RedisRequestRateLimiter, redis_client)
        else:
            consumption_store = SQLConsumptionStore(sessions)
            failed_attempts = SQLFailedAttemptLimiter(sessions, settings.failed_otp_threshold, window)
            request_limiter = partial(SQLRequestRateLimiter, sessions)

        logger.info(
            "Auth services wired",
            replay_store=type(consumption_store).__name__,
            limiter=type(failed_attempts).__name__,
            sms_enabled=settings.sms_enabled,
        )
        return cls(
            settings=settings,
            setup_flow=SetupFlow(
                codec=_codec(settings),
                guard=ReplayGuard(consumption_store),
                profiles=SQLProfileStore(sessions),
                password_policy=PasswordPolicy(min_length=settings.password_min_length),
                token_ttl=timedelta(hours=settings.setup_token_ttl_hours),
            ),
            otp=OTPService(SQLOTPStore(sessions), _otp_config(settings)),
            failed_attempts=failed_attempts,
            throttle=OTPRequestThrottle(limiter_factory=request_limiter),
            notifier=notifier or _notifier(settings),
            engine=engine,
            redis=redis_client,
        )

    async def close(self) -> None:
        await self.notifier.close()
        if self.redis is not None:
            await self.redis.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def _codec(settings: Settings, clock: Callable[[], datetime] = utcnow) -> SetupTokenCodec:
    return SetupTokenCodec(
        settings.jwt_secret_key,
        issuer=settings.token_issuer,
        audience=settings.token_audience,
        clock=clock,
    )


def _notifier(settings: Settings) -> Notifier:
    email = LoggingNotifier()
    if not settings.sms_enabled:
        return email
    return RoutingNotifier({
        DeliveryMethod.EMAIL: email,
        DeliveryMethod.SMS: TwilioSMSNotifier(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            messaging_service_sid=settings.twilio_messaging_service_sid,
        ),
    })
