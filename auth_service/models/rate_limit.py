"""
Per-IP request counters for code issuance, one row per hour-aligned window.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Integer, Enum, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from auth_service.core.database import Base
from auth_service.models.verification_code import ActorType, ChannelType, _enum_values


class RateLimitBucket(Base):
    """
    Request volume for an IP within one hour-truncated window.

    The unique constraint lets the increment be a single atomic upsert.
    """
    __tablename__ = "rate_limits"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_type = Column(Enum(ActorType, name="actor_type", native_enum=False, values_callable=_enum_values), nullable=False)
    channel_type = Column(Enum(ChannelType, name="channel_type", native_enum=False, values_callable=_enum_values), nullable=False)
    ip_address = Column(String(45), nullable=False)
    request_count = Column(Integer, nullable=False, default=1)
    window_start = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("actor_type", "channel_type", "ip_address", "window_start", name="uq_rate_limits_bucket"),
        Index("ix_rate_limits_ip_window", "ip_address", "window_start"),
    )

    def __repr__(self):
        return (
            f"<RateLimitBucket(actor={self.actor_type}, channel={self.channel_type}, "
            f"ip='{self.ip_address}', count={self.request_count}, window_start={self.window_start})>"
        )
