"""
Organization model - the billing entity that owns tenants and has member users
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid


class OrganizationStatus(str, Enum):
    """Organization lifecycle status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class OrganizationSize(str, Enum):
    """Self-reported organization size"""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


class MembershipRole(str, Enum):
    """Per-organization role, independent of the user's global role"""
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class Organization(SQLModel, table=True):
    """Organization owning tenants, members and at most one current subscription"""
    
    __tablename__ = "organizations"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=100)
    domain: Optional[str] = Field(default=None, max_length=255)
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[OrganizationSize] = Field(default=None)
    status: OrganizationStatus = Field(default=OrganizationStatus.ACTIVE, index=True)
    
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    
    created_by: Optional[uuid.UUID] = Field(default=None, description="User who created the organization")
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class OrganizationMembership(SQLModel, table=True):
    """Many-to-many link between users and organizations"""
    
    __tablename__ = "organization_memberships"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_membership_org_user"),
    )
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    role: MembershipRole = Field(default=MembershipRole.MEMBER)
    joined_at: datetime = Field(default_factory=datetime.utcnow)
