"""
One-time verification codes for passwordless sign-in.

Each row is one outstanding challenge for an (actor, channel, subject):
- Only a bcrypt hash of the 6-digit code is stored
- Time-limited (10 minutes by default)
- Single-use: `used` flips exactly once
- Attempt tracking for brute force protection
"""

import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Enum, Index
from sqlalchemy.dialects.postgresql import UUID
from auth_service.core.clock import utcnow
from auth_service.core.database import Base


class ActorType(str, enum.Enum):
    """Which console the code is for."""
    ADMIN = "admin"
    USER = "user"


class ChannelType(str, enum.Enum):
    """Delivery medium of the code."""
    EMAIL = "email"
    PHONE = "phone"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class VerificationCode(Base):
    """
    Outstanding one-time-code challenge.

    Validation always picks the most recently created unused, unexpired row
    for (actor_type, channel_type, subject); older rows are never consulted.
    """
    __tablename__ = "verification_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    actor_type = Column(Enum(ActorType, name="actor_type", native_enum=False, values_callable=_enum_values), nullable=False)
    channel_type = Column(Enum(ChannelType, name="channel_type", native_enum=False, values_callable=_enum_values), nullable=False)

    # Email address or E.164 phone number
    subject = Column(String(255), nullable=False)

    # bcrypt hash of the code; the plaintext is only ever sent to the subject
    code_hash = Column(String(255), nullable=False)

    attempts = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_verification_codes_subject_valid", "channel_type", "subject", "used", "expires_at", "created_at"),
        Index("ix_verification_codes_actor_subject", "actor_type", "channel_type", "subject"),
        Index("ix_verification_codes_expires_at", "expires_at"),
        Index("ix_verification_codes_ip_created", "ip_address", "created_at"),
    )

    def __repr__(self):
        return (
            f"<VerificationCode(actor={self.actor_type}, channel={self.channel_type}, "
            f"subject='{self.subject}', attempts={self.attempts}, used={self.used})>"
        )
