"""
Auth Routes
===========
HTTP surface of the setup-token and one-time-code flows.

Every rejection answers ``{"success": false, "error": ..., "code": ...}``
with the status carried by the core error.
"""

import math
import re

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import structlog

from skiadmin_core import metrics
from skiadmin_core.errors import (
    DeliveryFailed,
    InvalidRequest,
    Locked,
    SetupAuthError,
    error_response,
)
from skiadmin_core.notifications import build_otp_notification
from skiadmin_core.otp import OTPPurpose
from .schemas import (
    MessageResponse,
    SendOTPRequest,
    SendOTPResponse,
    SetupPasswordRequest,
    SetupUser,
    VerifyOTPRequest,
    VerifySetupTokenRequest,
    VerifySetupTokenResponse,
)
from .services import AuthServices

logger = structlog.get_logger(__name__)


def get_client_ip(request: Request) -> str:
    """First forwarded address, then the real-ip header, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def _require(**fields) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(fields)}")


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def create_auth_router(services: AuthServices) -> APIRouter:
    """
    Build the auth router over wired services.

    Args:
        services: Container built once at startup

    Returns:
        Router with the setup-token and OTP endpoints
    """
    router = APIRouter(tags=["Auth"])
    settings = services.settings
    code_pattern = re.compile(rf"^\d{{{settings.otp_length}}}$")

    @router.post("/auth/verify-setup-token")
    async def verify_setup_token(body: VerifySetupTokenRequest):
        """Check an invitation token without consuming it."""
        try:
            if not body.token:
                raise InvalidRequest("Token is required")
            principal = await services.setup_flow.verify_setup_token(body.token)
        except SetupAuthError as e:
            return error_response(e)

        return _dump(VerifySetupTokenResponse(user=SetupUser(
            id=principal.user_id,
            email=principal.email,
            role=principal.role,
            club_id=principal.club_id,
            type=principal.token_type,
        )))

    @router.post("/auth/setup-password")
    async def setup_password(body: SetupPasswordRequest):
        """Exchange an invitation token for a first password."""
        try:
            _require(userId=body.user_id, password=body.password, token=body.token)
            await services.setup_flow.setup_password(body.user_id, body.token, body.password)
        except SetupAuthError as e:
            return error_response(e)
        return _dump(MessageResponse(message="Password set successfully"))

    @router.post("/otp/send")
    async def send_otp(body: SendOTPRequest, request: Request):
        """Issue a one-time code and deliver it to the contact."""
        ip_address = get_client_ip(request)
        user_agent = request.headers.get("user-agent", "unknown")
        try:
            _require(userId=body.user_id, type=body.type, contact=body.contact)
            purpose = OTPPurpose.parse(body.type)
            quota = await services.throttle.check(body.user_id, body.contact, ip_address)

            generated = await services.otp.generate(
                body.user_id,
                purpose,
                body.contact,
                ip_address=ip_address,
                user_agent=user_agent,
            )

            metadata = body.metadata
            notification = build_otp_notification(
                purpose,
                body.contact,
                generated.code,
                services.otp.config.expiry_for(purpose) // 60,
                club_name=(metadata and metadata.club_name) or "Ski Admin",
                setup_link=(metadata and metadata.setup_link) or f"{settings.app_url}/setup-password",
            )
            delivery = await services.notifier.send(notification)
            if not delivery.success:
                raise DeliveryFailed()
        except SetupAuthError as e:
            return error_response(e)

        return _dump(SendOTPResponse(
            message="OTP sent successfully",
            expires_at=generated.expires_at,
            attempts_remaining=quota.remaining,
            code=generated.code if settings.is_development else None,
        ))

    @router.post("/otp/verify")
    async def verify_otp(body: VerifyOTPRequest):
        """Verify a one-time code behind the failed-attempt lockout."""
        try:
            _require(userId=body.user_id, code=body.code, type=body.type, contact=body.contact)
            purpose = OTPPurpose.parse(body.type)
            if not code_pattern.match(body.code):
                raise InvalidRequest(
                    f"Invalid code format. Code must be {settings.otp_length} digits."
                )

            lockout = await services.failed_attempts.check_failed_attempts(body.user_id)
            if not lockout.allowed:
                metrics.LOCKOUTS.inc()
                hours = max(math.ceil((lockout.retry_after or 0) / 3600), 1)
                raise Locked(
                    lockout.reset_at,
                    "Account temporarily locked due to too many failed attempts. "
                    f"Please try again in {hours} hour(s).",
                )

            result = await services.otp.verify(body.user_id, body.code, purpose, body.contact)
            if not result.success:
                await services.failed_attempts.record_failed_attempt(body.user_id)
                try:
                    result.raise_for_failure()
                except SetupAuthError as failure:
                    # Every code failure is a 400, whatever the error class
                    return JSONResponse(status_code=400, content=failure.to_dict())

            await services.failed_attempts.reset_failed_attempts(body.user_id)
        except SetupAuthError as e:
            return error_response(e)

        return _dump(MessageResponse(message=result.message))

    return router
