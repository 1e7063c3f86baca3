"""
User account model.

Accounts are keyed by a verified channel identity: an email address, an
E.164 phone number, or both. Accounts created by auto-registration carry
only that identity and a derived username.
"""

import uuid
from sqlalchemy import Column, String, DateTime, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from auth_service.core.clock import utcnow
from auth_service.core.database import Base


class UserStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class User(Base):
    """
    Platform account referenced by the auth flow.

    At least one of email/phone is always present.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    username = Column(String(255), nullable=False)

    # Channel identities
    email = Column(String(255), unique=True, nullable=True, index=True)
    phone = Column(String(16), unique=True, nullable=True, index=True)

    # Profile fields stay empty for auto-registered accounts
    first_name = Column(String, nullable=True)
    middle_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    # Authorization
    role = Column(String(50), nullable=False, default="Customer")
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    memberships = relationship("OrganizationUser", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("email IS NOT NULL OR phone IS NOT NULL", name="ck_users_has_identity"),
    )

    @property
    def is_active(self) -> bool:
        return (self.status or "").lower() == UserStatus.ACTIVE

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
