"""
Scheduled maintenance for the auth tables.

Issuance already purges expired codes opportunistically; this sweep covers
quiet periods and the tables issuance never touches.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from celery import shared_task
from sqlalchemy.orm import Session

from auth_service.core.clock import utcnow
from auth_service.core.config import AuthConfig
from auth_service.core.rate_limiter import RateLimiter
from auth_service.crud import refresh_token as refresh_store
from auth_service.crud import verification_code as code_store

logger = logging.getLogger(__name__)


def sweep_expired_rows(db: Session, config: AuthConfig, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Delete stale codes, rate-limit buckets and refresh tokens in one transaction.

    Returns:
        dict: rows deleted per table
    """
    now = now or utcnow()
    limiter = RateLimiter(db, clock=lambda: now)

    deleted = {
        "verification_codes": code_store.purge_stale(db, now, retention_hours=config.code_retention_hours),
        "rate_limits": limiter.purge_stale(retention_hours=config.rate_limit_retention_hours),
        "refresh_tokens": refresh_store.cleanup_expired(db, now, grace_days=config.refresh_token_cleanup_grace_days),
    }
    db.commit()
    return deleted


@shared_task(name="purge_expired_auth_rows")
def purge_expired_auth_rows_task():
    """
    Periodic purge of expired auth rows, scheduled hourly by Celery Beat.
    """
    from auth_service.core.database import SessionLocal
    from auth_service.core.config import settings

    config = AuthConfig.from_settings(settings)
    db = SessionLocal()
    try:
        deleted = sweep_expired_rows(db, config)
        logger.info(
            f"Purged {deleted['verification_codes']} codes, {deleted['rate_limits']} rate-limit buckets, "
            f"{deleted['refresh_tokens']} refresh tokens"
        )
        return {"status": "success", **deleted}
    except Exception as e:
        db.rollback()
        logger.error(f"Error purging expired auth rows: {str(e)}")
        raise
    finally:
        db.close()
