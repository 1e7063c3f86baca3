"""
Refresh-secret exchange and revocation.

Exchange without rotation only mints an access token. Exchange with
rotation revokes the presented row, persists a successor and revokes the
user's other live rows from the same IP, all in one transaction.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.errors import Invalid
from auth_service.core.hashing import SecretHasher
from auth_service.core.logging_config import get_logger
from auth_service.core.security import IssuedAccessToken, IssuedRefreshToken, TokenIssuer
from auth_service.crud import refresh_token as refresh_store
from auth_service.crud import user as user_store
from auth_service.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExchangeResult:
    access: IssuedAccessToken
    user: User
    refresh: Optional[IssuedRefreshToken] = None


class RefreshTokenExchange:
    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        hasher: SecretHasher,
        token_issuer: TokenIssuer,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.config = config
        self.hasher = hasher
        self.token_issuer = token_issuer
        self.clock = clock

    def exchange(
        self,
        secret: str,
        rotate: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ExchangeResult:
        """
        Trade a refresh secret for a new access token, optionally rotating it.

        Raises:
            Invalid: unknown, revoked or expired secret, or the account is gone or inactive
        """
        now = self.clock()
        row = refresh_store.get_active_by_hash(self.db, self.hasher.hash_refresh_secret(secret), now)
        if row is None:
            logger.warning(f"[USER_AUTH] Refresh with invalid token from IP {ip_address}")
            raise Invalid()

        user = user_store.get_by_id(self.db, row.user_id)
        if user is None or not user.is_active:
            logger.warning(f"[USER_AUTH] Refresh for missing or inactive account {row.user_id}")
            raise Invalid()

        if not rotate:
            access = self.token_issuer.issue_access_token(user)
            logger.info(f"[USER_AUTH] Access token refreshed for {user.id} from IP {ip_address}")
            return ExchangeResult(access=access, user=user)

        if not refresh_store.revoke_if_active(self.db, row.id, now):
            # Lost the race to a concurrent rotation of the same secret
            self.db.rollback()
            logger.warning(f"[USER_AUTH] Refresh token for {user.id} already rotated (IP {ip_address})")
            raise Invalid()

        successor = self.token_issuer.issue_refresh_token(
            user.id, ip_address, user_agent, supersede_device=False
        )
        revoked = refresh_store.revoke_ip_siblings(self.db, user.id, ip_address, keep_id=successor.token_id)
        self.db.commit()

        access = self.token_issuer.issue_access_token(user)
        logger.info(
            f"[USER_AUTH] Refresh token rotated for {user.id} from IP {ip_address} "
            f"({revoked} other tokens from this IP revoked)"
        )
        return ExchangeResult(access=access, user=user, refresh=successor)

    def revoke(self, secret: str, ip_address: Optional[str] = None) -> None:
        """
        Explicitly revoke one refresh secret (logout).

        Raises:
            Invalid: the secret is unknown
        """
        row = refresh_store.get_by_hash(self.db, self.hasher.hash_refresh_secret(secret))
        if row is None:
            raise Invalid()

        user_id = row.user_id
        if refresh_store.revoke_if_active(self.db, row.id, self.clock()):
            self.db.commit()
            logger.info(f"[USER_AUTH] Refresh token revoked for {user_id} from IP {ip_address}")
        else:
            self.db.rollback()
            logger.info(f"[USER_AUTH] Logout with inactive refresh token for {user_id}")
