"""
Core one-time code logic.

Handles generation, issuance and validation of 6-digit sign-in codes for
both actor types (admin, user) over both channels (email, phone).
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.errors import AttemptsExceeded, DeliveryFailed, Incorrect, NotFound
from auth_service.core.hashing import SecretHasher
from auth_service.core.logging_config import get_logger
from auth_service.core.rate_limiter import RateLimiter
from auth_service.crud import verification_code as code_store
from auth_service.models.verification_code import ActorType, ChannelType
from auth_service.services.messaging import CodeMessage

logger = get_logger(__name__)

CODE_LENGTH = 6


def generate_verification_code() -> str:
    """
    Generate a secure 6-digit verification code.

    Each digit is drawn independently from the secrets module, so leading
    zeros are as likely as any other digit.

    Returns:
        str: 6-digit numeric code (e.g., "012345")
    """
    return ''.join(secrets.choice('0123456789') for _ in range(CODE_LENGTH))


def audit_prefix(actor_type: ActorType) -> str:
    return "[ADMIN_AUTH]" if actor_type == ActorType.ADMIN else "[USER_AUTH]"


@dataclass(frozen=True)
class IssuedCode:
    code_id: uuid.UUID
    expires_at: datetime


class VerificationIssuer:
    """
    Rate-limit check, code generation, hashing, persistence, then dispatch.

    The code row and the rate-limit increment are committed together before
    the message goes out, so a subsequent read never sees half an issuance.
    """

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        hasher: SecretHasher,
        rate_limiter: RateLimiter,
        dispatcher,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.config = config
        self.hasher = hasher
        self.rate_limiter = rate_limiter
        self.dispatcher = dispatcher
        self.clock = clock

    def issue(
        self,
        subject: str,
        actor_type: ActorType,
        channel_type: ChannelType,
        ip_address: str,
        user_agent: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ) -> IssuedCode:
        """
        Issue a code to a subject.

        Args:
            subject: Email address or E.164 phone number
            actor_type: admin or user flow
            channel_type: email or phone
            ip_address: Requesting client IP, the rate-limit key
            user_agent: Requesting device, shown in the email
            ttl_minutes: Override for the configured code lifetime

        Returns:
            IssuedCode: id and expiry of the new code

        Raises:
            RateLimited: IP used up its allowance for this actor/channel
            DeliveryFailed: the transport did not accept the message
        """
        prefix = audit_prefix(actor_type)
        self.rate_limiter.check(actor_type, channel_type, ip_address)

        ttl = ttl_minutes or self.config.code_ttl_minutes
        now = self.clock()
        expires_at = now + timedelta(minutes=ttl)

        code = generate_verification_code()
        row = code_store.create(
            self.db,
            actor_type=actor_type,
            channel_type=channel_type,
            subject=subject,
            code_hash=self.hasher.hash_code(code),
            expires_at=expires_at,
            ip_address=ip_address,
            created_at=now,
        )
        code_id = row.id
        self.rate_limiter.record(actor_type, channel_type, ip_address)
        self.db.commit()

        message = CodeMessage(
            actor_type=actor_type,
            channel_type=channel_type,
            destination=subject,
            code=code,
            expires_in_minutes=ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            self.dispatcher.send_code(message)
        except DeliveryFailed:
            logger.error(f"{prefix} Code delivery failed for {subject} from IP {ip_address}")
            code_store.invalidate(self.db, code_id)
            self.db.commit()
            self._cleanup(actor_type, channel_type)
            raise

        self._cleanup(actor_type, channel_type)
        logger.info(
            f"{prefix} Verification code issued for {subject} via {channel_type.value} "
            f"from IP {ip_address}, expires at {expires_at.isoformat()}"
        )
        return IssuedCode(code_id=code_id, expires_at=expires_at)

    def _cleanup(self, actor_type: ActorType, channel_type: ChannelType) -> None:
        """Opportunistic purge of expired codes; failures never fail the issuance."""
        try:
            deleted = code_store.cleanup_expired(
                self.db,
                actor_type,
                channel_type,
                self.clock(),
                retention_hours=self.config.code_retention_hours,
            )
            self.db.commit()
            if deleted:
                logger.info(f"{audit_prefix(actor_type)} Cleaned up {deleted} expired {channel_type.value} codes")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to clean up expired codes: {e}")


class VerificationValidator:
    """
    Lookup, attempt-limit check, constant-time comparison, then single-use marking.

    This is the only write path that flips a code to used on success.
    """

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        hasher: SecretHasher,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.config = config
        self.hasher = hasher
        self.clock = clock

    def validate(
        self,
        subject: str,
        actor_type: ActorType,
        channel_type: ChannelType,
        submitted_code: str,
        ip_address: Optional[str] = None,
    ) -> bool:
        """
        Check a submitted code and consume it.

        Returns:
            bool: True once the code has been consumed by this call

        Raises:
            NotFound: no unused, unexpired code (including one consumed concurrently)
            AttemptsExceeded: the code is locked
            Incorrect: wrong code; the attempt has been counted
        """
        prefix = audit_prefix(actor_type)
        now = self.clock()

        row = code_store.get_latest_valid(self.db, actor_type, channel_type, subject, now)
        if row is None:
            logger.warning(f"{prefix} No valid code for {subject} from IP {ip_address}")
            raise NotFound()

        if row.attempts >= self.config.max_attempts:
            logger.warning(f"{prefix} Max attempts exceeded for {subject} from IP {ip_address}")
            raise AttemptsExceeded()

        # The attempt is claimed before comparing so parallel guesses share one ceiling
        attempt_number = code_store.reserve_attempt(self.db, row.id, self.config.max_attempts)
        if attempt_number is None:
            used = code_store.is_used(self.db, row.id)
            self.db.rollback()
            if used:
                logger.warning(f"{prefix} Code for {subject} was consumed concurrently (IP {ip_address})")
                raise NotFound()
            logger.warning(f"{prefix} Max attempts exceeded for {subject} from IP {ip_address}")
            raise AttemptsExceeded()
        self.db.commit()

        if not self.hasher.verify_code(submitted_code, row.code_hash):
            logger.warning(
                f"{prefix} Invalid code attempt {attempt_number}/{self.config.max_attempts} "
                f"for {subject} from IP {ip_address}"
            )
            raise Incorrect()

        consumed = code_store.mark_used(self.db, row.id, now, self.config.max_attempts)
        self.db.commit()
        if not consumed:
            logger.warning(f"{prefix} Code for {subject} was consumed concurrently (IP {ip_address})")
            raise NotFound()

        logger.info(f"{prefix} Code verified for {subject} from IP {ip_address}")
        return True
