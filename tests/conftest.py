"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- A controllable clock
- A recording message dispatcher in place of SES/SNS
- FastAPI test client
"""

import os

os.environ.setdefault("JWT_SECRET", "test-signing-secret-not-for-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("JSON_LOGS", "false")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth_service.core.auth_flow import AuthFlow
from auth_service.core.config import AuthConfig
from auth_service.core.database import Base, get_db
from auth_service.core.deps import get_auth_config, get_auth_flow, get_message_dispatcher
from auth_service.core.errors import DeliveryFailed
from auth_service.core.hashing import SecretHasher
from auth_service.models import Organization, OrganizationUser, User, UserStatus
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_SECRET = "test-signing-secret-not-for-production"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


class RecordingDispatcher:
    """Stands in for SES/SNS; remembers every code it was asked to send."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def send_code(self, message) -> None:
        if self.fail:
            raise DeliveryFailed()
        self.messages.append(message)

    def last_code(self, destination: str) -> str:
        for message in reversed(self.messages):
            if message.destination == destination:
                return message.code
        raise AssertionError(f"No code was sent to {destination}")


@pytest.fixture
def db_session():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    # Mid-hour so a few minutes of movement stay inside one rate-limit window
    return FakeClock(datetime(2026, 3, 10, 12, 5, 0, tzinfo=timezone.utc))


@pytest.fixture
def auth_config():
    return AuthConfig(jwt_secret=TEST_SECRET, bcrypt_rounds=4)


@pytest.fixture
def hasher():
    return SecretHasher(bcrypt_rounds=4)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def flow(db_session, auth_config, dispatcher, clock, hasher):
    return AuthFlow(db_session, auth_config, dispatcher, clock=clock, hasher=hasher)


@pytest.fixture
def client(db_session, auth_config, dispatcher, clock, hasher):
    """
    FastAPI test client with overridden database, config, dispatcher and clock.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_get_auth_flow():
        return AuthFlow(db_session, auth_config, dispatcher, clock=clock, hasher=hasher)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_config] = lambda: auth_config
    app.dependency_overrides[get_message_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_auth_flow] = override_get_auth_flow

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory for accounts, optionally with organization memberships."""
    def _make_user(email=None, phone=None, role="Customer", status=UserStatus.ACTIVE, orgs=()):
        user = User(
            id=uuid.uuid4(),
            username=(email or phone or "user").split("@")[0],
            email=email,
            phone=phone,
            role=role,
            status=status,
        )
        db_session.add(user)
        for org_type, org_role, name in orgs:
            org = Organization(org_id=uuid.uuid4(), name=name, org_type=org_type)
            db_session.add(org)
            db_session.add(OrganizationUser(org_id=org.org_id, user_id=user.id, org_role=org_role))
        db_session.commit()
        return user

    return _make_user
