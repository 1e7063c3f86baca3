"""
Database models package.
"""

from auth_service.models.user import User, UserStatus
from auth_service.models.organization import Organization, OrganizationUser
from auth_service.models.verification_code import VerificationCode, ActorType, ChannelType
from auth_service.models.rate_limit import RateLimitBucket
from auth_service.models.refresh_token import RefreshToken

__all__ = [
    "User",
    "UserStatus",
    "Organization",
    "OrganizationUser",
    "VerificationCode",
    "ActorType",
    "ChannelType",
    "RateLimitBucket",
    "RefreshToken",
]
