"""
CRUD operations for refresh tokens (the Refresh Token Store).

Rows are addressed by the hash of their secret. Revocations are single
UPDATE statements so concurrent exchanges of the same secret cannot both
observe an active row.
"""

import uuid
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from auth_service.models.refresh_token import RefreshToken


def create(
    db: Session,
    *,
    user_id: uuid.UUID,
    token_hash: str,
    expires_at: datetime,
    ip_address: Optional[str],
    user_agent: Optional[str],
    created_at: datetime,
) -> RefreshToken:
    """
    Persist a new refresh token hash.

    Args:
        db: Database session
        user_id: Owner of the token
        token_hash: Hash of the secret (the secret itself is never stored)
        expires_at: Absolute expiry
        ip_address: Client IP at issuance
        user_agent: Client User-Agent at issuance (device fingerprint)
        created_at: Issuance time

    Returns:
        RefreshToken: The flushed row
    """
    token = RefreshToken(
        id=uuid.uuid4(),
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        revoked=False,
        ip_address=ip_address or None,
        user_agent=user_agent or None,
        created_at=created_at,
    )
    db.add(token)
    db.flush()
    return token


def get_by_hash(db: Session, token_hash: str) -> Optional[RefreshToken]:
    return db.query(RefreshToken).filter(RefreshToken.token_hash == token_hash).first()


def get_active_by_hash(db: Session, token_hash: str, now: datetime) -> Optional[RefreshToken]:
    """Lookup that only matches non-revoked, unexpired rows."""
    return db.query(RefreshToken).filter(
        RefreshToken.token_hash == token_hash,
        RefreshToken.revoked == False,  # noqa: E712
        RefreshToken.expires_at > now,
    ).first()


def revoke_if_active(db: Session, token_id: uuid.UUID, now: datetime) -> bool:
    """
    Revoke a token only if it is still active.

    Returns:
        bool: True for the single caller that performed the transition
    """
    updated = db.query(RefreshToken).filter(
        RefreshToken.id == token_id,
        RefreshToken.revoked == False,  # noqa: E712
        RefreshToken.expires_at > now,
    ).update({"revoked": True}, synchronize_session=False)
    return updated == 1


def revoke_device_siblings(
    db: Session,
    user_id: uuid.UUID,
    user_agent: Optional[str],
    keep_id: uuid.UUID,
) -> int:
    """
    Revoke every other live token of the user issued to the same User-Agent.

    A missing User-Agent matches other tokens without one.
    """
    return db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        func.coalesce(RefreshToken.user_agent, "") == (user_agent or ""),
        RefreshToken.revoked == False,  # noqa: E712
        RefreshToken.id != keep_id,
    ).update({"revoked": True}, synchronize_session=False)


def revoke_ip_siblings(
    db: Session,
    user_id: uuid.UUID,
    ip_address: Optional[str],
    keep_id: uuid.UUID,
) -> int:
    """Revoke every other live token of the user issued from the same IP."""
    return db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        func.coalesce(RefreshToken.ip_address, "") == (ip_address or ""),
        RefreshToken.revoked == False,  # noqa: E712
        RefreshToken.id != keep_id,
    ).update({"revoked": True}, synchronize_session=False)


def list_active_for_user(db: Session, user_id: uuid.UUID, now: datetime) -> List[RefreshToken]:
    return db.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked == False,  # noqa: E712
        RefreshToken.expires_at > now,
    ).order_by(RefreshToken.created_at.asc()).all()


def cleanup_expired(db: Session, now: datetime, grace_days: int = 7) -> int:
    """
    Delete tokens expired for longer than the grace period, and revoked
    tokens that have also expired.

    Returns:
        int: Number of tokens deleted
    """
    cutoff = now - timedelta(days=grace_days)
    return db.query(RefreshToken).filter(
        or_(
            RefreshToken.expires_at < cutoff,
            and_(RefreshToken.revoked == True, RefreshToken.expires_at < now),  # noqa: E712
        )
    ).delete(synchronize_session=False)
