"""
Database-backed rate limiting for code issuance.

Counts requests per IP in hour-aligned buckets, keyed by actor type and
channel. The check is a single aggregate over the trailing window; the
increment is a single upsert, so concurrent requests can only overcount.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from auth_service.core.clock import Clock, hour_floor, utcnow
from auth_service.core.errors import RateLimited
from auth_service.core.logging_config import get_logger
from auth_service.models.rate_limit import RateLimitBucket
from auth_service.models.verification_code import ActorType, ChannelType

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class RateLimiter:
    """
    Fixed-window request limiter persisted in the rate_limits table.

    Windows start on the hour, so a burst straddling an hour boundary is
    split across two buckets.
    """

    def __init__(
        self,
        db: Session,
        max_requests: int = 5,
        window_hours: int = 1,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.max_requests = max_requests
        self.window_hours = window_hours
        self.clock = clock

    def request_count(self, actor_type: ActorType, channel_type: ChannelType, ip_address: str) -> int:
        """Sum of requests for this IP in buckets inside the trailing window."""
        window_floor = self.clock() - timedelta(hours=self.window_hours)
        total = self.db.query(func.coalesce(func.sum(RateLimitBucket.request_count), 0)).filter(
            RateLimitBucket.actor_type == actor_type,
            RateLimitBucket.channel_type == channel_type,
            RateLimitBucket.ip_address == ip_address,
            RateLimitBucket.window_start > window_floor,
        ).scalar()
        return int(total or 0)

    def is_allowed(self, actor_type: ActorType, channel_type: ChannelType, ip_address: str) -> bool:
        return self.request_count(actor_type, channel_type, ip_address) < self.max_requests

    def retry_after_seconds(self, now: Optional[datetime] = None) -> int:
        """Seconds until the current bucket stops counting."""
        now = now or self.clock()
        next_window = hour_floor(now) + timedelta(hours=1)
        return max(1, int((next_window - now).total_seconds()))

    def check(self, actor_type: ActorType, channel_type: ChannelType, ip_address: str) -> None:
        """
        Raise RateLimited if the IP has used up its allowance.

        Raises:
            RateLimited: with retry_after set to the seconds until the next window
        """
        if not self.is_allowed(actor_type, channel_type, ip_address):
            logger.warning(
                "Rate limit exceeded",
                extra={"actor_type": actor_type.value, "channel_type": channel_type.value, "ip_address": ip_address},
            )
            raise RateLimited(retry_after=self.retry_after_seconds())

    def record(self, actor_type: ActorType, channel_type: ChannelType, ip_address: str) -> None:
        """
        Count one request in the current hour's bucket.

        Insert-or-increment in one statement. Does not commit.
        """
        window_start = hour_floor(self.clock())
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)

        if insert is None:
            self._record_without_upsert(actor_type, channel_type, ip_address, window_start)
            return

        stmt = insert(RateLimitBucket).values(
            id=uuid.uuid4(),
            actor_type=actor_type,
            channel_type=channel_type,
            ip_address=ip_address,
            request_count=1,
            window_start=window_start,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["actor_type", "channel_type", "ip_address", "window_start"],
            set_={"request_count": RateLimitBucket.request_count + 1},
        )
        self.db.execute(stmt)

    def _record_without_upsert(
        self,
        actor_type: ActorType,
        channel_type: ChannelType,
        ip_address: str,
        window_start: datetime,
    ) -> None:
        updated = self.db.query(RateLimitBucket).filter(
            RateLimitBucket.actor_type == actor_type,
            RateLimitBucket.channel_type == channel_type,
            RateLimitBucket.ip_address == ip_address,
            RateLimitBucket.window_start == window_start,
        ).update({"request_count": RateLimitBucket.request_count + 1}, synchronize_session=False)
        if updated == 0:
            self.db.add(RateLimitBucket(
                id=uuid.uuid4(),
                actor_type=actor_type,
                channel_type=channel_type,
                ip_address=ip_address,
                request_count=1,
                window_start=window_start,
            ))
            self.db.flush()

    def check_and_record(self, actor_type: ActorType, channel_type: ChannelType, ip_address: str) -> bool:
        """
        Deny or count a request in one call.

        Returns:
            bool: False if the allowance is used up (nothing recorded)
        """
        if not self.is_allowed(actor_type, channel_type, ip_address):
            return False
        self.record(actor_type, channel_type, ip_address)
        return True

    def purge_stale(self, retention_hours: int = 24) -> int:
        """
        Delete buckets whose window started before the retention cutoff.

        Returns:
            int: Number of buckets deleted
        """
        cutoff = self.clock() - timedelta(hours=retention_hours)
        return self.db.query(RateLimitBucket).filter(
            RateLimitBucket.window_start < cutoff
        ).delete(synchronize_session=False)
