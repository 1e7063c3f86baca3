"""
Maps a verified channel identity to an account.

Covers admin eligibility, the strict "require existing account" and
"require role" modes used by some integrations, and auto-registration for
the default user flow.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.errors import Forbidden, Unauthorized
from auth_service.core.logging_config import get_logger
from auth_service.crud import user as user_store
from auth_service.models.user import User
from auth_service.models.verification_code import ChannelType

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountPolicy:
    """
    Per-call account requirements.

    A required role implies an existing account: a subject with no account
    is denied rather than auto-registered.
    """
    require_existing: bool = False
    required_role: Optional[str] = None

    @property
    def strict(self) -> bool:
        return self.require_existing or bool(self.required_role)


DEFAULT_POLICY = AccountPolicy()


@dataclass(frozen=True)
class ResolvedAccount:
    user: User
    created: bool = False


class IdentityResolver:
    def __init__(self, db: Session, config: AuthConfig, clock: Clock = utcnow):
        self.db = db
        self.config = config
        self.clock = clock

    def lookup(self, channel_type: ChannelType, subject: str) -> Optional[User]:
        return user_store.get_by_identity(self.db, channel_type, subject)

    def require_admin(self, subject: str, channel_type: ChannelType = ChannelType.EMAIL) -> User:
        """
        Return the account if it may use the admin console.

        Raises:
            Unauthorized: no account, role not allow-listed, or not active
        """
        user = self.lookup(channel_type, subject)
        if user is None:
            logger.warning(f"[ADMIN_AUTH] Admin access attempted for unknown account {subject}")
            raise Unauthorized()
        if user.role not in self.config.admin_allowed_roles:
            logger.warning(f"[ADMIN_AUTH] Admin access denied for {subject}: role '{user.role}' not allowed")
            raise Unauthorized()
        if not user.is_active:
            logger.warning(f"[ADMIN_AUTH] Admin access denied for {subject}: status '{user.status}'")
            raise Unauthorized()
        return user

    def enforce_policy(self, channel_type: ChannelType, subject: str, policy: AccountPolicy) -> Optional[User]:
        """
        Apply strict-mode checks without creating anything.

        Returns:
            The existing account, or None when the policy allows a missing one

        Raises:
            Forbidden: account required but missing, or role mismatch
        """
        user = self.lookup(channel_type, subject)
        if not policy.strict:
            return user

        if user is None:
            logger.warning(f"[USER_AUTH] Strict mode: no account for {subject}")
            raise Forbidden()
        if policy.required_role and user.role != policy.required_role:
            logger.warning(f"[USER_AUTH] Strict mode: role mismatch for {subject}")
            raise Forbidden()
        return user

    def resolve_or_create(
        self,
        channel_type: ChannelType,
        subject: str,
        policy: AccountPolicy = DEFAULT_POLICY,
    ) -> ResolvedAccount:
        """
        Find the account for a verified identity, creating one if allowed.

        Raises:
            Forbidden: under strict policy, account missing or role mismatch
        """
        user = self.enforce_policy(channel_type, subject, policy)
        if user is not None:
            return ResolvedAccount(user)

        try:
            user = user_store.create_from_identity(
                self.db,
                channel_type,
                subject,
                role=self.config.default_user_role,
                now=self.clock(),
            )
            self.db.commit()
        except IntegrityError:
            # Another request registered the same identity first
            self.db.rollback()
            user = self.lookup(channel_type, subject)
            if user is None:
                raise
            logger.info(f"[USER_AUTH] Concurrent registration for {subject}, using existing account")
            return ResolvedAccount(user)

        logger.info(f"[USER_AUTH] Auto-registered account {user.id} for {subject}")
        return ResolvedAccount(user, created=True)
