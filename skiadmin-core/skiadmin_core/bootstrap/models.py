"""
Bootstrap Models
================
States of the credential bootstrap flow and the principal data it exposes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class BootstrapState(str, Enum):
    """Lifecycle of an invited account."""
    TOKEN_ISSUED = "token_issued"
    TOKEN_VERIFIED_PENDING = "token_verified_pending"
    CREDENTIAL_SET = "credential_set"
    PROFILE_VERIFIED = "profile_verified"
    REJECTED = "rejected"


class Role(str, Enum):
    SYSTEM_ADMIN = "system_admin"
    ADMIN = "admin"
    COACH = "coach"
    PARENT = "parent"


@dataclass
class Profile:
    """The fields of a user profile the bootstrap flow reads and writes."""
    id: str
    email: str
    role: str = Role.PARENT.value
    club_id: Optional[str] = None
    email_verified_at: Optional[datetime] = None
    password_hash: Optional[str] = None
    setup_completed_via_token: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None


@dataclass(frozen=True)
class SetupPrincipal:
    """Who a verified setup token belongs to."""
    user_id: str
    email: str
    role: str
    club_id: Optional[str]
    token_type: str
    jti: str
    state: BootstrapState = BootstrapState.TOKEN_VERIFIED_PENDING
