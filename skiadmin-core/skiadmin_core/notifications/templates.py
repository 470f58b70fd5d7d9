"""
Message Templates
=================
Per-purpose text for one-time codes and invitations.
"""

from typing import Optional

from skiadmin_core.otp.models import OTPPurpose
from .base import DeliveryMethod, Notification

SMS_MAX_LENGTH = 160


def _greeting(first_name: Optional[str]) -> str:
    return f"Hi {first_name}," if first_name else "Hello,"


def _expiry_text(expiry_minutes: int) -> str:
    if expiry_minutes % 60 == 0:
        hours = expiry_minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return f"{expiry_minutes} minutes"


def render_otp_message(
    purpose: OTPPurpose,
    code: str,
    expiry_minutes: int,
    first_name: Optional[str] = None,
    club_name: str = "Ski Admin",
    setup_link: Optional[str] = None,
) -> str:
    """Build the body sent with a one-time code."""
    expires = _expiry_text(expiry_minutes)

    if purpose is OTPPurpose.EMAIL_VERIFICATION:
        return (
            f"{_greeting(first_name)}\n\n"
            f"Your verification code for email verification is:\n\n{code}\n\n"
            f"This code will expire in {expires}.\n\n"
            "If you didn't request this code, please ignore this email.\n\n"
            "Thanks,\nThe Ski Admin Team"
        )

    if purpose is OTPPurpose.ADMIN_INVITATION:
        return (
            f"{_greeting(first_name)}\n\n"
            f"You've been invited to join {club_name} as an administrator!\n\n"
            f"Your verification code is: {code}\n\n"
            "To complete your setup:\n"
            f"1. Visit: {setup_link}\n"
            "2. Enter the code above\n"
            "3. Create your password\n\n"
            f"This code will expire in {expires}.\n\n"
            "If you didn't expect this invitation, please ignore this email.\n\n"
            f"Thanks,\nThe {club_name} Team"
        )

    if purpose is OTPPurpose.PASSWORD_RESET:
        return (
            "Hello,\n\nYou requested to reset your password.\n\n"
            f"Your verification code is: {code}\n\n"
            f"This code will expire in {expires}.\n\n"
            "If you didn't request this, please ignore this email and your "
            "password will remain unchanged.\n\n"
            "Thanks,\nThe Ski Admin Team"
        )

    return f"Your verification code is: {code}. Valid for {expires}."


def _subject(purpose: OTPPurpose, club_name: str) -> Optional[str]:
    if purpose is OTPPurpose.EMAIL_VERIFICATION:
        return "Verify Your Email"
    if purpose is OTPPurpose.ADMIN_INVITATION:
        return f"Admin Invitation - {club_name}"
    if purpose is OTPPurpose.PASSWORD_RESET:
        return "Reset Your Password"
    if purpose is OTPPurpose.TWO_FACTOR_LOGIN:
        return "Your Login Code"
    return None


def build_otp_notification(
    purpose: OTPPurpose,
    contact: str,
    code: str,
    expiry_minutes: int,
    club_name: str = "Ski Admin",
    setup_link: Optional[str] = None,
) -> Notification:
    """Address a code message to the contact over the channel its purpose implies."""
    method = DeliveryMethod.SMS if purpose.is_phone else DeliveryMethod.EMAIL
    return Notification(
        method=method,
        recipient=contact,
        subject=None if method is DeliveryMethod.SMS else _subject(purpose, club_name),
        body=render_otp_message(
            purpose,
            code,
            expiry_minutes,
            club_name=club_name,
            setup_link=setup_link,
        ),
        code=code,
    )


def render_invitation_message(setup_link: str, club_name: str = "Ski Admin") -> str:
    """Body of an account setup invitation."""
    return (
        f"Hello,\n\nYou've been invited to join {club_name} as an administrator!\n\n"
        f"Set your password here: {setup_link}\n\n"
        "This link can be used once and expires in 24 hours.\n\n"
        f"Thanks,\nThe {club_name} Team"
    )
