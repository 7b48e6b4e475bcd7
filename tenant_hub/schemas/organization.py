"""
Pydantic schemas for organizations and memberships
"""

from pydantic import Field
from typing import Optional
from datetime import datetime
import uuid

from tenant_hub.models.organization import MembershipRole, OrganizationSize, OrganizationStatus
from tenant_hub.schemas.base import APIModel


class OrganizationCreate(APIModel):
    name: str = Field(..., min_length=2, max_length=100)
    domain: Optional[str] = Field(default=None, max_length=255)
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[OrganizationSize] = None
    settings: dict = Field(default_factory=dict)


class OrganizationUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    domain: Optional[str] = Field(default=None, max_length=255)
    industry: Optional[str] = Field(default=None, max_length=100)
    size: Optional[OrganizationSize] = None
    status: Optional[OrganizationStatus] = None
    settings: Optional[dict] = None


class OrganizationResponse(APIModel):
    id: uuid.UUID
    name: str
    domain: Optional[str]
    industry: Optional[str]
    size: Optional[OrganizationSize]
    status: OrganizationStatus
    settings: dict
    created_by: Optional[uuid.UUID]
    created_at: datetime
    updated_at: Optional[datetime]


class MembershipCreate(APIModel):
    user_id: uuid.UUID
    role: MembershipRole = MembershipRole.MEMBER


class UserOrganizationAdd(APIModel):
    """Membership created from the user side"""
    organization_id: uuid.UUID
    role: MembershipRole = MembershipRole.MEMBER


class MembershipResponse(APIModel):
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: MembershipRole
    joined_at: datetime
