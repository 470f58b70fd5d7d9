"""
Request and Response Schemas
============================
Wire shapes of the auth endpoints. Field names on the wire are camelCase.

Request fields are optional at the schema level so a missing field answers
400 with the same error body as every other rejection.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerifySetupTokenRequest(CamelModel):
    token: Optional[str] = None


class SetupPasswordRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    token: Optional[str] = None
    password: Optional[str] = None


class OTPMetadata(CamelModel):
    first_name: Optional[str] = Field(default=None, alias="firstName")
    club_name: Optional[str] = Field(default=None, alias="clubName")
    setup_link: Optional[str] = Field(default=None, alias="setupLink")


class SendOTPRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    type: Optional[str] = None
    contact: Optional[str] = None
    metadata: Optional[OTPMetadata] = None


class VerifyOTPRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    code: Optional[str] = None
    type: Optional[str] = None
    contact: Optional[str] = None


class SetupUser(CamelModel):
    id: str
    email: str
    role: str
    club_id: Optional[str] = Field(default=None, alias="clubId")
    type: str


class VerifySetupTokenResponse(CamelModel):
    success: bool = True
    user: SetupUser


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class SendOTPResponse(CamelModel):
    success: bool = True
    message: str
    expires_at: datetime = Field(alias="expiresAt")
    attempts_remaining: int = Field(alias="attemptsRemaining")
    code: Optional[str] = None
