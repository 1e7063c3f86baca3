"""
Passwordless sign-in flow exposed to the API layer.

AuthFlow wires the per-request components together (rate limiter, code
issuer and validator, identity resolver, token issuer, refresh exchange)
and converts persistence failures into ServiceUnavailable so raw database
errors never reach callers.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.errors import ServiceUnavailable
from auth_service.core.hashing import SecretHasher
from auth_service.core.identity import DEFAULT_POLICY, AccountPolicy, IdentityResolver
from auth_service.core.logging_config import get_logger
from auth_service.core.rate_limiter import RateLimiter
from auth_service.core.refresh_tokens import ExchangeResult, RefreshTokenExchange
from auth_service.core.security import AccessTokenClaims, IssuedAccessToken, IssuedRefreshToken, TokenIssuer
from auth_service.core.verification import IssuedCode, VerificationIssuer, VerificationValidator, audit_prefix
from auth_service.crud import user as user_store
from auth_service.models.user import User
from auth_service.models.verification_code import ActorType, ChannelType

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    access: IssuedAccessToken
    refresh: IssuedRefreshToken
    user: User
    created: bool = False


class AuthFlow:
    """
    Request code, submit code, refresh, revoke.

    Build one per request around that request's database session.
    """

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        dispatcher,
        clock: Clock = utcnow,
        hasher: Optional[SecretHasher] = None,
    ):
        self.db = db
        self.config = config
        self.clock = clock
        self.hasher = hasher or SecretHasher(config.bcrypt_rounds)

        self.rate_limiter = RateLimiter(
            db,
            max_requests=config.rate_limit_per_window,
            window_hours=config.rate_limit_window_hours,
            clock=clock,
        )
        self.issuer = VerificationIssuer(db, config, self.hasher, self.rate_limiter, dispatcher, clock=clock)
        self.validator = VerificationValidator(db, config, self.hasher, clock=clock)
        self.identity = IdentityResolver(db, config, clock=clock)
        self.tokens = TokenIssuer(db, config, self.hasher, clock=clock)
        self.refresh_exchange = RefreshTokenExchange(db, config, self.hasher, self.tokens, clock=clock)

    @contextmanager
    def _persistence_guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error during {operation}: {e}")
            raise ServiceUnavailable() from e

    def request_code(
        self,
        subject: str,
        channel_type: ChannelType,
        ip_address: str,
        user_agent: Optional[str] = None,
        actor_type: ActorType = ActorType.USER,
        policy: AccountPolicy = DEFAULT_POLICY,
    ) -> IssuedCode:
        """
        Send a one-time code to a subject.

        Admin requests require an eligible account. User requests are open to
        unknown subjects unless the policy is strict.

        Raises:
            Unauthorized: admin subject not eligible
            Forbidden: strict policy not satisfied
            RateLimited: IP allowance used up
            DeliveryFailed: transport failure or timeout
            ServiceUnavailable: database failure
        """
        with self._persistence_guard("code issuance"):
            if actor_type == ActorType.ADMIN:
                self.identity.require_admin(subject, channel_type)
            else:
                self.identity.enforce_policy(channel_type, subject, policy)

            return self.issuer.issue(subject, actor_type, channel_type, ip_address, user_agent=user_agent)

    def submit_code(
        self,
        subject: str,
        channel_type: ChannelType,
        code: str,
        ip_address: str,
        user_agent: Optional[str] = None,
        actor_type: ActorType = ActorType.USER,
        policy: AccountPolicy = DEFAULT_POLICY,
    ) -> SessionTokens:
        """
        Verify a code and open a session.

        Admin eligibility is checked before the code is consumed. Strict user
        policy is checked after, so a denial there still burns the code.

        Raises:
            NotFound, AttemptsExceeded, Incorrect: code checks
            Unauthorized: admin subject not eligible
            Forbidden: strict policy not satisfied (code already consumed)
            ServiceUnavailable: database failure
        """
        prefix = audit_prefix(actor_type)
        with self._persistence_guard("code verification"):
            admin_user = None
            if actor_type == ActorType.ADMIN:
                admin_user = self.identity.require_admin(subject, channel_type)

            self.validator.validate(subject, actor_type, channel_type, code, ip_address=ip_address)

            if admin_user is not None:
                user, created = admin_user, False
            else:
                resolved = self.identity.resolve_or_create(channel_type, subject, policy)
                user, created = resolved.user, resolved.created

            user_store.update_last_login(self.db, user.id, self.clock())
            refresh = self.tokens.issue_refresh_token(user.id, ip_address, user_agent, supersede_device=True)
            self.db.commit()

            access = self.tokens.issue_access_token(user, channel_type, subject)

        logger.info(f"{prefix} Successful authentication for {subject} (user {user.id}) from IP {ip_address}")
        return SessionTokens(access=access, refresh=refresh, user=user, created=created)

    def refresh_access_token(
        self,
        refresh_secret: str,
        rotate: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ExchangeResult:
        with self._persistence_guard("token refresh"):
            return self.refresh_exchange.exchange(
                refresh_secret, rotate=rotate, ip_address=ip_address, user_agent=user_agent
            )

    def revoke_refresh_token(self, refresh_secret: str, ip_address: Optional[str] = None) -> None:
        with self._persistence_guard("token revocation"):
            self.refresh_exchange.revoke(refresh_secret, ip_address=ip_address)

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        return self.tokens.decode_access_token(token)
