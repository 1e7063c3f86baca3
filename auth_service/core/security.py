"""
Token issuance: signed access tokens and opaque refresh secrets.

Access tokens are HS256 JWTs carrying a snapshot of the account's role and
organization memberships. Refresh secrets are random URL-safe strings; only
their hash is persisted.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.errors import Invalid
from auth_service.core.hashing import SecretHasher
from auth_service.crud import refresh_token as refresh_store
from auth_service.crud import user as user_store
from auth_service.crud.user import OrgMembership
from auth_service.models.user import User
from auth_service.models.verification_code import ChannelType


@dataclass(frozen=True)
class AccessTokenClaims:
    """
    The complete claim set of an access token.

    Claims are taken at issuance time and are not refreshed while the token lives.
    """
    user_id: str
    identity: str
    channel: str
    iat: int
    exp: int
    role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    org_memberships: Tuple[OrgMembership, ...] = field(default_factory=tuple)

    @property
    def sub(self) -> str:
        return self.user_id

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.iat, tz=timezone.utc)

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sub": self.user_id,
            "user_id": self.user_id,
            "identity": self.identity,
            "channel": self.channel,
            "org_memberships": [m.to_dict() for m in self.org_memberships],
            "iat": self.iat,
            "exp": self.exp,
        }
        if self.role:
            payload["role"] = self.role
        if self.email:
            payload["email"] = self.email
        if self.phone:
            payload["phone"] = self.phone
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AccessTokenClaims":
        """
        Rebuild claims from a decoded token.

        Raises:
            Invalid: a required claim is missing or malformed
        """
        try:
            memberships = tuple(
                OrgMembership(
                    org_id=str(m["org_id"]),
                    org_type=str(m["org_type"]),
                    org_role=str(m["org_role"]),
                    name=str(m.get("name", "")),
                )
                for m in payload.get("org_memberships") or []
            )
            return cls(
                user_id=str(payload["user_id"]),
                identity=str(payload["identity"]),
                channel=str(payload["channel"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
                role=payload.get("role"),
                email=payload.get("email"),
                phone=payload.get("phone"),
                org_memberships=memberships,
            )
        except (KeyError, TypeError, ValueError):
            raise Invalid()


@dataclass(frozen=True)
class IssuedAccessToken:
    token: str
    expires_at: datetime
    claims: AccessTokenClaims


@dataclass(frozen=True)
class IssuedRefreshToken:
    """The plaintext secret lives only in this object and the response built from it."""
    secret: str
    expires_at: datetime
    token_id: uuid.UUID


def generate_refresh_secret(num_bytes: int = 32) -> str:
    """Random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(num_bytes)


def channel_identity(user: User) -> Tuple[ChannelType, str]:
    """Preferred identity for a user: email when present, otherwise phone."""
    if user.email:
        return ChannelType.EMAIL, user.email
    return ChannelType.PHONE, user.phone


class TokenIssuer:
    """
    Mints access tokens and refresh secrets for an account.
    """

    def __init__(self, db: Session, config: AuthConfig, hasher: SecretHasher, clock: Clock = utcnow):
        self.db = db
        self.config = config
        self.hasher = hasher
        self.clock = clock

    def build_claims(self, user: User, channel_type: ChannelType, identity: str) -> AccessTokenClaims:
        now = self.clock()
        expires_at = now + timedelta(minutes=self.config.access_token_ttl_minutes)
        memberships = tuple(user_store.get_org_memberships(self.db, user.id))
        return AccessTokenClaims(
            user_id=str(user.id),
            identity=identity,
            channel=channel_type.value,
            iat=int(now.timestamp()),
            exp=int(expires_at.timestamp()),
            role=user.role,
            email=user.email,
            phone=user.phone,
            org_memberships=memberships,
        )

    def issue_access_token(
        self,
        user: User,
        channel_type: Optional[ChannelType] = None,
        identity: Optional[str] = None,
    ) -> IssuedAccessToken:
        """
        Sign an access token for the user.

        Args:
            user: Account the token is for
            channel_type: Channel the identity was verified on
            identity: Verified email or phone; defaults to the account's own

        Returns:
            IssuedAccessToken with the encoded JWT, its expiry and claims
        """
        if channel_type is None or identity is None:
            channel_type, identity = channel_identity(user)

        claims = self.build_claims(user, channel_type, identity)
        token = jwt.encode(claims.to_payload(), self.config.jwt_secret, algorithm=self.config.jwt_algorithm)
        return IssuedAccessToken(token=token, expires_at=claims.expires_at, claims=claims)

    def issue_refresh_token(
        self,
        user_id: uuid.UUID,
        ip_address: Optional[str],
        user_agent: Optional[str],
        supersede_device: bool = True,
    ) -> IssuedRefreshToken:
        """
        Create and persist a refresh secret. Does not commit.

        With supersede_device, every other live token of the user issued to
        the same User-Agent is revoked.
        """
        now = self.clock()
        expires_at = now + timedelta(days=self.config.refresh_token_ttl_days)
        secret = generate_refresh_secret(self.config.refresh_token_bytes)

        row = refresh_store.create(
            self.db,
            user_id=user_id,
            token_hash=self.hasher.hash_refresh_secret(secret),
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        if supersede_device:
            refresh_store.revoke_device_siblings(self.db, user_id, user_agent, keep_id=row.id)

        return IssuedRefreshToken(secret=secret, expires_at=expires_at, token_id=row.id)

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        """
        Verify signature and expiry of an access token.

        Raises:
            Invalid: bad signature, malformed token or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            raise Invalid()

        claims = AccessTokenClaims.from_payload(payload)
        if claims.exp <= int(self.clock().timestamp()):
            raise Invalid()
        return claims
