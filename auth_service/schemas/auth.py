"""
Pydantic schemas for the passwordless auth endpoints.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
import re

from pydantic import BaseModel, EmailStr, Field, field_validator

E164_PATTERN = re.compile(r'^\+\d{1,15}$')
CODE_PATTERN = re.compile(r'^\d{6}$')


def normalize_email(v: str) -> str:
    return v.strip().lower()


def validate_e164(v: str) -> str:
    """Phone numbers must be E.164: '+' followed by 1 to 15 digits."""
    v = v.strip()
    if not E164_PATTERN.match(v):
        raise ValueError('Phone number must be in E.164 format, e.g. +14155550123')
    return v


def validate_code(v: str) -> str:
    if not CODE_PATTERN.match(v):
        raise ValueError('Code must be exactly 6 digits')
    return v


class StrictModeFields(BaseModel):
    """Optional account requirements for stricter integrations"""
    require_existing: bool = Field(False, description="Deny subjects without an account")
    require_role: Optional[str] = Field(None, max_length=50, description="Deny accounts without this role")


# ============================================================================
# Request Schemas
# ============================================================================

class SendUserCodeRequest(StrictModeFields):
    """Request a sign-in code by email"""
    email: EmailStr

    @field_validator('email')
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_email(v)


class VerifyUserCodeRequest(SendUserCodeRequest):
    """Submit the code received by email"""
    code: str = Field(..., min_length=6, max_length=6, description="6-digit verification code")

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        return validate_code(v)


class SendPhoneCodeRequest(StrictModeFields):
    """Request a sign-in code by SMS"""
    phone: str = Field(..., max_length=16, description="E.164 phone number")

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return validate_e164(v)


class VerifyPhoneCodeRequest(SendPhoneCodeRequest):
    """Submit the code received by SMS"""
    code: str = Field(..., min_length=6, max_length=6, description="6-digit verification code")

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        return validate_code(v)


class AdminSendCodeRequest(BaseModel):
    """Request an admin console sign-in code"""
    email: EmailStr

    @field_validator('email')
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_email(v)


class AdminVerifyCodeRequest(AdminSendCodeRequest):
    code: str = Field(..., min_length=6, max_length=6, description="6-digit verification code")

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        return validate_code(v)


class RefreshTokenRequest(BaseModel):
    """Exchange a refresh token for a new access token"""
    refresh_token: str = Field(..., min_length=1, max_length=512)
    rotate: bool = Field(False, description="Also replace the refresh token")


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=512)


# ============================================================================
# Response Schemas
# ============================================================================

class MessageResponse(BaseModel):
    message: str


class SendCodeResponse(BaseModel):
    """Response after sending a sign-in code"""
    message: str
    expires_at: datetime


class AccountResponse(BaseModel):
    """Account as seen by its owner"""
    id: UUID
    username: str
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class SessionTokenResponse(BaseModel):
    """Tokens issued after a successful code verification"""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    is_new_account: bool = False
    user: AccountResponse


class RefreshResponse(BaseModel):
    """New access token, plus a new refresh token when rotated"""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    refresh_token: Optional[str] = None
    refresh_expires_at: Optional[datetime] = None


class OrgMembershipResponse(BaseModel):
    org_id: str
    org_type: str
    org_role: str
    name: str = ""


class ClaimsResponse(BaseModel):
    """Claims of the presented access token"""
    user_id: str
    identity: str
    channel: str
    role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    org_memberships: List[OrgMembershipResponse] = []
    issued_at: datetime
    expires_at: datetime
