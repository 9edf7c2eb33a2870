"""
Schemas for phone verification API
"""
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class SendCodeRequest(BaseModel):
    """Request a login code"""
    phone: str = Field(min_length=10, max_length=32)


class VerifyRequest(BaseModel):
    """Check a login code"""
    phone: str = Field(min_length=10, max_length=32)
    code: str = Field(min_length=4, max_length=10, validation_alias=AliasChoices("code", "verificationCode"))


class RegisterSendCodeRequest(BaseModel):
    """Request a registration code"""
    phone: str = Field(min_length=6, max_length=32)


class RegisterVerifyRequest(BaseModel):
    """Check a registration code"""
    phone: str = Field(min_length=6, max_length=32)
    code: str = Field(pattern=r"^\d{4,10}$", validation_alias=AliasChoices("code", "verificationCode"))


class SendCodeResponse(BaseModel):
    # Identical whether or not an SMS went out
    success: bool = True
    message: str = "Verification code sent"


class VerifyResponse(BaseModel):
    success: bool = True
    user_id: Optional[str] = None
    already_verified: bool = False


class RegisterVerifyResponse(BaseModel):
    success: bool = True
    phone: str  # E.164
    already_verified: bool = False


class LogoutResponse(BaseModel):
    ok: bool


class RateLimitStatus(BaseModel):
    purpose: str
    scope: str
    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    degraded: bool = False


class RateLimitStatusResponse(BaseModel):
    """Counters for the caller's origin and, if given, a phone. Local env only."""
    limits: List[RateLimitStatus]
