"""
Tests for the hour-aligned, database-backed rate limiter.
"""

from datetime import datetime, timezone

import pytest

from auth_service.core.errors import RateLimited
from auth_service.core.rate_limiter import RateLimiter
from auth_service.models import ActorType, ChannelType, RateLimitBucket

USER, ADMIN = ActorType.USER, ActorType.ADMIN
EMAIL, PHONE = ChannelType.EMAIL, ChannelType.PHONE


@pytest.fixture
def limiter(db_session, clock):
    return RateLimiter(db_session, max_requests=5, window_hours=1, clock=clock)


def record_n(limiter, db_session, n, actor=USER, channel=EMAIL, ip="10.0.0.1"):
    for _ in range(n):
        limiter.record(actor, channel, ip)
    db_session.commit()


class TestRateLimitWindow:
    """Allowance within one hour-aligned window"""

    def test_allows_until_limit(self, limiter, db_session):
        record_n(limiter, db_session, 4)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is True

        record_n(limiter, db_session, 1)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is False

    def test_check_raises_with_retry_after(self, limiter, db_session):
        record_n(limiter, db_session, 5)
        with pytest.raises(RateLimited) as exc_info:
            limiter.check(USER, EMAIL, "10.0.0.1")
        # Clock is at 12:05, so the window rolls over in 55 minutes
        assert exc_info.value.retry_after == 55 * 60

    def test_increments_share_one_bucket_row(self, limiter, db_session):
        record_n(limiter, db_session, 3)
        rows = db_session.query(RateLimitBucket).all()
        assert len(rows) == 1
        assert rows[0].request_count == 3

    def test_buckets_are_keyed_by_actor_channel_and_ip(self, limiter, db_session):
        record_n(limiter, db_session, 5)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is False
        assert limiter.is_allowed(ADMIN, EMAIL, "10.0.0.1") is True
        assert limiter.is_allowed(USER, PHONE, "10.0.0.1") is True
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.2") is True

    def test_check_and_record(self, limiter, db_session):
        for _ in range(5):
            assert limiter.check_and_record(USER, EMAIL, "10.0.0.1") is True
        db_session.commit()
        assert limiter.check_and_record(USER, EMAIL, "10.0.0.1") is False
        assert db_session.query(RateLimitBucket).one().request_count == 5


class TestHourBoundary:
    """
    Windows start on the hour. A burst that straddles the boundary is split
    across two buckets, and only the current hour's bucket counts against a
    one-hour window, so up to twice the limit can pass around the boundary.
    """

    def test_requests_split_across_boundary_are_not_denied(self, limiter, db_session, clock):
        clock.set(datetime(2026, 3, 10, 12, 58, tzinfo=timezone.utc))
        record_n(limiter, db_session, 4)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is True

        clock.set(datetime(2026, 3, 10, 13, 1, tzinfo=timezone.utc))
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is True
        record_n(limiter, db_session, 4)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is True
        assert db_session.query(RateLimitBucket).count() == 2

    def test_previous_window_stops_counting_on_the_hour(self, limiter, db_session, clock):
        clock.set(datetime(2026, 3, 10, 12, 30, tzinfo=timezone.utc))
        record_n(limiter, db_session, 5)
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is False

        clock.set(datetime(2026, 3, 10, 13, 0, 1, tzinfo=timezone.utc))
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is True

    def test_longer_window_sums_several_buckets(self, db_session, clock):
        limiter = RateLimiter(db_session, max_requests=5, window_hours=3, clock=clock)
        record_n(limiter, db_session, 3)
        clock.advance(hours=1)
        record_n(limiter, db_session, 2)
        assert limiter.request_count(USER, EMAIL, "10.0.0.1") == 5
        assert limiter.is_allowed(USER, EMAIL, "10.0.0.1") is False


class TestPurge:
    def test_purge_removes_buckets_older_than_retention(self, limiter, db_session, clock):
        record_n(limiter, db_session, 2)
        clock.advance(hours=25)
        record_n(limiter, db_session, 1)

        deleted = limiter.purge_stale(retention_hours=24)
        db_session.commit()

        assert deleted == 1
        assert db_session.query(RateLimitBucket).count() == 1
