"""
Tests for code issuance and validation.

Covers single use, attempt ceiling, expiry, rate limiting, delivery
failure and opportunistic cleanup.
"""

from datetime import timedelta

import pytest

from auth_service.core.errors import (
    AttemptsExceeded,
    DeliveryFailed,
    Incorrect,
    NotFound,
    RateLimited,
)
from auth_service.core.rate_limiter import RateLimiter
from auth_service.core.verification import VerificationIssuer, VerificationValidator
from auth_service.crud import verification_code as code_store
from auth_service.models import ActorType, ChannelType, RateLimitBucket, VerificationCode

USER = ActorType.USER
EMAIL = ChannelType.EMAIL
SUBJECT = "user@example.com"
IP = "203.0.113.7"


@pytest.fixture
def issuer(db_session, auth_config, hasher, dispatcher, clock):
    limiter = RateLimiter(db_session, max_requests=auth_config.rate_limit_per_window, clock=clock)
    return VerificationIssuer(db_session, auth_config, hasher, limiter, dispatcher, clock=clock)


@pytest.fixture
def validator(db_session, auth_config, hasher, clock):
    return VerificationValidator(db_session, auth_config, hasher, clock=clock)


def wrong_code(code: str) -> str:
    return "000000" if code != "000000" else "111111"


class TestIssue:
    """Code issuance"""

    def test_issue_persists_hash_and_dispatches_plaintext(self, issuer, db_session, dispatcher, clock):
        issued = issuer.issue(SUBJECT, USER, EMAIL, IP, user_agent="pytest-agent")

        assert issued.expires_at == clock.now + timedelta(minutes=10)
        row = db_session.query(VerificationCode).one()
        sent = dispatcher.messages[-1]

        assert row.id == issued.code_id
        assert row.code_hash != sent.code
        assert row.attempts == 0
        assert row.used is False
        assert row.ip_address == IP
        assert sent.destination == SUBJECT
        assert sent.expires_in_minutes == 10
        assert sent.user_agent == "pytest-agent"

    def test_issue_counts_against_rate_limit(self, issuer, db_session):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        bucket = db_session.query(RateLimitBucket).one()
        assert bucket.request_count == 1

    def test_sixth_request_in_an_hour_is_rate_limited(self, issuer, db_session, dispatcher):
        for _ in range(5):
            issuer.issue(SUBJECT, USER, EMAIL, IP)

        with pytest.raises(RateLimited):
            issuer.issue(SUBJECT, USER, EMAIL, IP)

        assert len(dispatcher.messages) == 5
        assert db_session.query(VerificationCode).count() == 5

    def test_custom_ttl(self, issuer, clock):
        issued = issuer.issue(SUBJECT, USER, EMAIL, IP, ttl_minutes=3)
        assert issued.expires_at == clock.now + timedelta(minutes=3)

    def test_delivery_failure_retires_the_code(self, issuer, db_session, dispatcher):
        dispatcher.fail = True
        with pytest.raises(DeliveryFailed):
            issuer.issue(SUBJECT, USER, EMAIL, IP)

        row = db_session.query(VerificationCode).one()
        assert row.used is True
        # The attempt still counts toward the IP's allowance
        assert db_session.query(RateLimitBucket).one().request_count == 1

    def test_issue_cleans_up_long_expired_codes(self, issuer, db_session, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        clock.advance(minutes=10 + 61)

        issuer.issue(SUBJECT, USER, EMAIL, IP)

        assert db_session.query(VerificationCode).count() == 1

    def test_cleanup_keeps_recently_expired_codes(self, issuer, db_session, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        clock.advance(minutes=30)

        issuer.issue(SUBJECT, USER, EMAIL, IP)

        assert db_session.query(VerificationCode).count() == 2


class TestValidate:
    """Code validation"""

    def test_correct_code_succeeds_once(self, issuer, validator, dispatcher, db_session):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        assert validator.validate(SUBJECT, USER, EMAIL, code) is True
        assert db_session.query(VerificationCode).one().used is True

        # Replay
        with pytest.raises(NotFound):
            validator.validate(SUBJECT, USER, EMAIL, code)

    def test_no_code_is_not_found(self, validator):
        with pytest.raises(NotFound):
            validator.validate(SUBJECT, USER, EMAIL, "123456")

    def test_wrong_code_counts_attempt(self, issuer, validator, dispatcher, db_session):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        with pytest.raises(Incorrect):
            validator.validate(SUBJECT, USER, EMAIL, wrong_code(code))

        assert db_session.query(VerificationCode).one().attempts == 1
        # Still usable below the ceiling
        assert validator.validate(SUBJECT, USER, EMAIL, code) is True

    def test_three_wrong_codes_lock_the_code(self, issuer, validator, dispatcher):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        for _ in range(3):
            with pytest.raises(Incorrect):
                validator.validate(SUBJECT, USER, EMAIL, wrong_code(code))

        with pytest.raises(AttemptsExceeded):
            validator.validate(SUBJECT, USER, EMAIL, code)

    def test_correct_code_on_last_allowed_attempt(self, issuer, validator, dispatcher, db_session):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        for _ in range(2):
            with pytest.raises(Incorrect):
                validator.validate(SUBJECT, USER, EMAIL, wrong_code(code))

        assert validator.validate(SUBJECT, USER, EMAIL, code) is True
        row = db_session.query(VerificationCode).one()
        assert row.used is True
        assert row.attempts == 3

    def test_attempt_reservation_stops_at_ceiling(self, issuer, dispatcher, db_session, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        row = db_session.query(VerificationCode).one()
        code_id = row.id

        claimed = [code_store.reserve_attempt(db_session, code_id, 3) for _ in range(5)]
        db_session.commit()

        assert claimed == [1, 2, 3, None, None]
        assert db_session.query(VerificationCode).one().attempts == 3

    def test_code_past_ceiling_cannot_be_consumed(self, issuer, dispatcher, db_session, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        row = db_session.query(VerificationCode).one()
        row.attempts = 4
        db_session.commit()

        assert code_store.mark_used(db_session, row.id, clock.now, 3) is False
        db_session.commit()
        assert db_session.query(VerificationCode).one().used is False

    def test_expired_code_is_rejected(self, issuer, validator, dispatcher, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        clock.advance(minutes=10, seconds=1)

        with pytest.raises(NotFound):
            validator.validate(SUBJECT, USER, EMAIL, code)

    def test_newest_code_is_authoritative(self, issuer, validator, dispatcher, clock):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        first = dispatcher.last_code(SUBJECT)
        clock.advance(seconds=30)
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        second = dispatcher.last_code(SUBJECT)

        if first != second:
            with pytest.raises(Incorrect):
                validator.validate(SUBJECT, USER, EMAIL, first)
        assert validator.validate(SUBJECT, USER, EMAIL, second) is True

    def test_codes_are_scoped_by_actor_and_channel(self, issuer, validator, dispatcher):
        issuer.issue(SUBJECT, USER, EMAIL, IP)
        code = dispatcher.last_code(SUBJECT)

        with pytest.raises(NotFound):
            validator.validate(SUBJECT, ActorType.ADMIN, EMAIL, code)
        with pytest.raises(NotFound):
            validator.validate(SUBJECT, USER, ChannelType.PHONE, code)
        with pytest.raises(NotFound):
            validator.validate("other@example.com", USER, EMAIL, code)

    def test_undelivered_code_cannot_be_used(self, issuer, validator, dispatcher, db_session, hasher, clock):
        dispatcher.fail = True
        with pytest.raises(DeliveryFailed):
            issuer.issue(SUBJECT, USER, EMAIL, IP)

        # Give the retired row a known hash to show that even the right code is refused
        row = db_session.query(VerificationCode).one()
        row.code_hash = hasher.hash_code("246810")
        db_session.commit()

        with pytest.raises(NotFound):
            validator.validate(SUBJECT, USER, EMAIL, "246810")
