"""
Organization membership tables.

Read-only from the auth flow's point of view: memberships are snapshotted
into access-token claims at issuance time.
"""

import uuid
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from auth_service.core.database import Base


class Organization(Base):
    """A retailer, manufacturer, logistics partner or similar org."""
    __tablename__ = "organizations"

    org_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=True)
    org_type = Column(String(50), nullable=False)

    members = relationship("OrganizationUser", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Organization(org_id={self.org_id}, org_type='{self.org_type}')>"


class OrganizationUser(Base):
    """Membership of a user in an organization with an org-scoped role."""
    __tablename__ = "organization_users"

    org_id = Column(UUID(as_uuid=True), ForeignKey("organizations.org_id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    org_role = Column(String(50), nullable=False)

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")

    def __repr__(self):
        return f"<OrganizationUser(org_id={self.org_id}, user_id={self.user_id}, org_role='{self.org_role}')>"
