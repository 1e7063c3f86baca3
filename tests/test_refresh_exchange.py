"""
Tests for refresh-secret exchange, rotation and revocation.
"""

import pytest

from auth_service.core.errors import Invalid
from auth_service.core.refresh_tokens import RefreshTokenExchange
from auth_service.core.security import TokenIssuer
from auth_service.crud import refresh_token as refresh_store
from auth_service.models import RefreshToken, UserStatus

IP = "198.51.100.1"
UA = "Browser/1.0"


@pytest.fixture
def token_issuer(db_session, auth_config, hasher, clock):
    return TokenIssuer(db_session, auth_config, hasher, clock=clock)


@pytest.fixture
def exchange(db_session, auth_config, hasher, token_issuer, clock):
    return RefreshTokenExchange(db_session, auth_config, hasher, token_issuer, clock=clock)


@pytest.fixture
def buyer(make_user):
    return make_user(email="buyer@example.com")


def issue(token_issuer, db_session, user, ip=IP, user_agent=UA):
    issued = token_issuer.issue_refresh_token(user.id, ip, user_agent)
    db_session.commit()
    return issued


def valid_rows(db_session, clock, user):
    return {row.id for row in refresh_store.list_active_for_user(db_session, user.id, clock.now)}


class TestExchangeWithoutRotation:
    def test_returns_access_token_only(self, exchange, token_issuer, db_session, buyer):
        issued = issue(token_issuer, db_session, buyer)

        result = exchange.exchange(issued.secret, ip_address=IP)

        assert result.refresh is None
        assert result.access.claims.user_id == str(buyer.id)
        assert result.access.claims.identity == "buyer@example.com"

    def test_valid_rows_unchanged(self, exchange, token_issuer, db_session, buyer, clock):
        issued = issue(token_issuer, db_session, buyer)
        issue(token_issuer, db_session, buyer, user_agent="Phone/2.0")
        before = valid_rows(db_session, clock, buyer)

        exchange.exchange(issued.secret, ip_address=IP)
        exchange.exchange(issued.secret, ip_address=IP)

        assert valid_rows(db_session, clock, buyer) == before

    def test_unknown_secret_is_invalid(self, exchange):
        with pytest.raises(Invalid):
            exchange.exchange("definitely-not-issued")

    def test_expired_secret_is_invalid(self, exchange, token_issuer, db_session, buyer, clock):
        issued = issue(token_issuer, db_session, buyer)
        clock.advance(days=30, seconds=1)

        assert valid_rows(db_session, clock, buyer) == set()
        with pytest.raises(Invalid):
            exchange.exchange(issued.secret)

    def test_inactive_account_is_invalid(self, exchange, token_issuer, db_session, buyer):
        issued = issue(token_issuer, db_session, buyer)
        buyer.status = UserStatus.INACTIVE
        db_session.commit()

        with pytest.raises(Invalid):
            exchange.exchange(issued.secret)


class TestRotation:
    def test_rotation_revokes_presented_row(self, exchange, token_issuer, db_session, buyer, hasher):
        issued = issue(token_issuer, db_session, buyer)

        result = exchange.exchange(issued.secret, rotate=True, ip_address=IP, user_agent=UA)

        assert result.refresh is not None
        assert result.refresh.secret != issued.secret
        old = db_session.query(RefreshToken).filter(RefreshToken.id == issued.token_id).one()
        new = db_session.query(RefreshToken).filter(RefreshToken.id == result.refresh.token_id).one()
        assert old.revoked is True
        assert new.revoked is False
        assert new.token_hash == hasher.hash_refresh_secret(result.refresh.secret)

    def test_one_valid_successor_per_user_and_ip(self, exchange, token_issuer, db_session, buyer, clock):
        presented = issue(token_issuer, db_session, buyer, user_agent="Browser/1.0")
        issue(token_issuer, db_session, buyer, user_agent="Browser/2.0")
        other_ip = issue(token_issuer, db_session, buyer, ip="192.0.2.50", user_agent="Laptop/1.0")

        result = exchange.exchange(presented.secret, rotate=True, ip_address=IP, user_agent=UA)

        same_ip_valid = {
            row.id
            for row in db_session.query(RefreshToken).filter(RefreshToken.ip_address == IP).all()
            if not row.revoked
        }
        assert same_ip_valid == {result.refresh.token_id}
        assert other_ip.token_id in valid_rows(db_session, clock, buyer)

    def test_rotation_leaves_other_users_alone(self, exchange, token_issuer, db_session, buyer, make_user, clock):
        neighbour = make_user(email="neighbour@example.com")
        theirs = issue(token_issuer, db_session, neighbour)
        mine = issue(token_issuer, db_session, buyer)

        exchange.exchange(mine.secret, rotate=True, ip_address=IP)

        assert theirs.token_id in valid_rows(db_session, clock, neighbour)

    def test_reusing_rotated_secret_is_invalid(self, exchange, token_issuer, db_session, buyer):
        """Rotating twice with the original secret: the second attempt fails"""
        original = issue(token_issuer, db_session, buyer)

        first = exchange.exchange(original.secret, rotate=True, ip_address=IP)
        assert first.refresh is not None

        with pytest.raises(Invalid):
            exchange.exchange(original.secret, rotate=True, ip_address=IP)

        # The successor keeps working
        assert exchange.exchange(first.refresh.secret, ip_address=IP).access.token


class TestRevoke:
    def test_logout_revokes_token(self, exchange, token_issuer, db_session, buyer):
        issued = issue(token_issuer, db_session, buyer)

        exchange.revoke(issued.secret, ip_address=IP)

        assert db_session.query(RefreshToken).one().revoked is True
        with pytest.raises(Invalid):
            exchange.exchange(issued.secret)

    def test_logout_twice_is_harmless(self, exchange, token_issuer, db_session, buyer):
        issued = issue(token_issuer, db_session, buyer)
        exchange.revoke(issued.secret)
        exchange.revoke(issued.secret)
        assert db_session.query(RefreshToken).one().revoked is True

    def test_logout_unknown_secret_is_invalid(self, exchange):
        with pytest.raises(Invalid):
            exchange.revoke("never-issued")
