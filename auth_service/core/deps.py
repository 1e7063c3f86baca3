"""
FastAPI dependencies for the auth endpoints.

Each request gets its own AuthFlow around its own database session.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from auth_service.core.auth_flow import AuthFlow
from auth_service.core.config import AuthConfig, settings
from auth_service.core.database import get_db
from auth_service.core.errors import Invalid
from auth_service.core.hashing import SecretHasher
from auth_service.core.security import AccessTokenClaims
from auth_service.services.messaging import get_default_dispatcher

# HTTP Bearer token scheme (Authorization: Bearer <token>)
security = HTTPBearer(auto_error=False)


@lru_cache()
def get_auth_config() -> AuthConfig:
    return AuthConfig.from_settings(settings).validate()


@lru_cache()
def get_secret_hasher(bcrypt_rounds: int) -> SecretHasher:
    return SecretHasher(bcrypt_rounds)


def get_message_dispatcher():
    return get_default_dispatcher()


def get_auth_flow(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    dispatcher=Depends(get_message_dispatcher),
) -> AuthFlow:
    return AuthFlow(db, config, dispatcher, hasher=get_secret_hasher(config.bcrypt_rounds))


def get_client_ip(request: Request) -> str:
    """
    Extract the client's IP address from the request.

    First X-Forwarded-For entry, then X-Real-IP, then the socket peer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first (client IP)
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    user_agent = request.headers.get("User-Agent")
    return user_agent[:512] if user_agent else None


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    flow: AuthFlow = Depends(get_auth_flow),
) -> AccessTokenClaims:
    """
    Validate the bearer access token and return its claims.

    Raises:
        Invalid: missing, malformed, tampered or expired token
    """
    if credentials is None:
        raise Invalid()
    return flow.decode_access_token(credentials.credentials)
