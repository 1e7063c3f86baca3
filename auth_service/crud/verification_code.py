"""
CRUD operations for one-time verification codes (the Verification Store).

Functions here flush but never commit: the caller owns the transaction so a
code row and its rate-limit increment land together or not at all.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from auth_service.models.verification_code import VerificationCode, ActorType, ChannelType


def create(
    db: Session,
    *,
    actor_type: ActorType,
    channel_type: ChannelType,
    subject: str,
    code_hash: str,
    expires_at: datetime,
    ip_address: Optional[str],
    created_at: datetime,
) -> VerificationCode:
    """
    Persist a new code challenge.

    Returns:
        The pending VerificationCode (flushed, id assigned)
    """
    verification = VerificationCode(
        id=uuid.uuid4(),
        actor_type=actor_type,
        channel_type=channel_type,
        subject=subject,
        code_hash=code_hash,
        attempts=0,
        expires_at=expires_at,
        used=False,
        ip_address=ip_address,
        created_at=created_at,
    )
    db.add(verification)
    db.flush()
    return verification


def get_latest_valid(
    db: Session,
    actor_type: ActorType,
    channel_type: ChannelType,
    subject: str,
    now: datetime,
) -> Optional[VerificationCode]:
    """
    Get the authoritative code for a subject: newest unused, unexpired row.
    """
    return db.query(VerificationCode).filter(
        VerificationCode.actor_type == actor_type,
        VerificationCode.channel_type == channel_type,
        VerificationCode.subject == subject,
        VerificationCode.used == False,  # noqa: E712
        VerificationCode.expires_at > now,
    ).order_by(VerificationCode.created_at.desc()).first()


def reserve_attempt(db: Session, code_id: uuid.UUID, max_attempts: int) -> Optional[int]:
    """
    Claim one comparison against a code before it is made.

    The increment only applies while the code is unused and under the
    ceiling, so concurrent guesses can never push attempts past max_attempts.

    Returns:
        The attempt number claimed, or None if the code is used or locked
    """
    updated = db.query(VerificationCode).filter(
        VerificationCode.id == code_id,
        VerificationCode.used == False,  # noqa: E712
        VerificationCode.attempts < max_attempts,
    ).update({"attempts": VerificationCode.attempts + 1}, synchronize_session=False)
    if updated != 1:
        return None
    return db.query(VerificationCode.attempts).filter(VerificationCode.id == code_id).scalar()


def is_used(db: Session, code_id: uuid.UUID) -> bool:
    return bool(db.query(VerificationCode.used).filter(VerificationCode.id == code_id).scalar())


def mark_used(db: Session, code_id: uuid.UUID, now: datetime, max_attempts: int) -> bool:
    """
    Consume a code with compare-and-set semantics.

    Only flips rows that are still unused, unexpired and within the attempt
    ceiling, so of two racing callers exactly one sees True.
    """
    updated = db.query(VerificationCode).filter(
        VerificationCode.id == code_id,
        VerificationCode.used == False,  # noqa: E712
        VerificationCode.expires_at > now,
        VerificationCode.attempts <= max_attempts,
    ).update({"used": True}, synchronize_session=False)
    return updated == 1


def invalidate(db: Session, code_id: uuid.UUID) -> None:
    """Retire a code that was never delivered."""
    db.query(VerificationCode).filter(
        VerificationCode.id == code_id
    ).update({"used": True}, synchronize_session=False)


def cleanup_expired(
    db: Session,
    actor_type: ActorType,
    channel_type: ChannelType,
    now: datetime,
    retention_hours: int = 1,
) -> int:
    """
    Delete codes for one actor/channel that expired more than the retention window ago.

    Returns:
        int: Number of codes deleted
    """
    cutoff = now - timedelta(hours=retention_hours)
    return db.query(VerificationCode).filter(
        VerificationCode.actor_type == actor_type,
        VerificationCode.channel_type == channel_type,
        VerificationCode.expires_at < cutoff,
    ).delete(synchronize_session=False)


def purge_stale(db: Session, now: datetime, retention_hours: int = 1) -> int:
    """
    Delete expired codes past retention and used codes older than 24 hours,
    across every actor and channel.

    Returns:
        int: Number of codes deleted
    """
    expired_cutoff = now - timedelta(hours=retention_hours)
    used_cutoff = now - timedelta(hours=24)
    expired = db.query(VerificationCode).filter(
        VerificationCode.expires_at < expired_cutoff
    ).delete(synchronize_session=False)
    used = db.query(VerificationCode).filter(
        VerificationCode.used == True,  # noqa: E712
        VerificationCode.created_at < used_cutoff,
    ).delete(synchronize_session=False)
    return expired + used
