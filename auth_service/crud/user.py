"""
CRUD operations for accounts and their organization memberships.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from auth_service.models.organization import Organization, OrganizationUser
from auth_service.models.user import User, UserStatus
from auth_service.models.verification_code import ChannelType


@dataclass(frozen=True)
class OrgMembership:
    """One organization the account belongs to, as carried in access-token claims."""
    org_id: str
    org_type: str
    org_role: str
    name: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"org_id": self.org_id, "org_type": self.org_type, "org_role": self.org_role, "name": self.name}


def get_by_id(db: Session, user_id: uuid.UUID) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def get_by_phone(db: Session, phone: str) -> Optional[User]:
    return db.query(User).filter(User.phone == phone).first()


def get_by_identity(db: Session, channel_type: ChannelType, subject: str) -> Optional[User]:
    """Find the account owning a channel identity."""
    if channel_type == ChannelType.PHONE:
        return get_by_phone(db, subject)
    return get_by_email(db, subject)


def username_for(channel_type: ChannelType, subject: str) -> str:
    """
    Derive a username from a verified identity.

    Email: the local part. Phone: "user" followed by the digits.
    """
    if channel_type == ChannelType.PHONE:
        return "user" + subject.replace("+", "")
    at_index = subject.find("@")
    return subject[:at_index] if at_index > 0 else subject


def create_from_identity(
    db: Session,
    channel_type: ChannelType,
    subject: str,
    role: str,
    now: datetime,
) -> User:
    """
    Create a minimal account from a verified email or phone.

    Profile fields are left empty. Flushes so unique violations surface
    here; the caller commits.
    """
    user = User(
        id=uuid.uuid4(),
        username=username_for(channel_type, subject),
        email=subject if channel_type == ChannelType.EMAIL else None,
        phone=subject if channel_type == ChannelType.PHONE else None,
        role=role,
        status=UserStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.flush()
    return user


def get_org_memberships(db: Session, user_id: uuid.UUID) -> List[OrgMembership]:
    rows = db.query(OrganizationUser, Organization).join(
        Organization, Organization.org_id == OrganizationUser.org_id
    ).filter(
        OrganizationUser.user_id == user_id
    ).order_by(OrganizationUser.org_id).all()

    return [
        OrgMembership(
            org_id=str(membership.org_id),
            org_type=organization.org_type,
            org_role=membership.org_role,
            name=organization.name or "",
        )
        for membership, organization in rows
    ]


def update_last_login(db: Session, user_id: uuid.UUID, now: datetime) -> None:
    db.query(User).filter(User.id == user_id).update({"last_login_at": now}, synchronize_session=False)
