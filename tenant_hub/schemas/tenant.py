"""
Pydantic schemas for tenants
"""

from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime
import uuid

from tenant_hub.models.plan import PlanName
from tenant_hub.models.tenant import TenantStatus
from tenant_hub.schemas.base import APIModel

DOMAIN_PATTERN = r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$"
SUBDOMAIN_PATTERN = r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$"


class IsolationSettings(APIModel):
    """Isolation options accepted at tenant creation"""
    encryption_required: bool = True
    retention_period: Optional[int] = Field(default=None, ge=1, le=3650)
    data_residency: Optional[str] = Field(default=None, min_length=2, max_length=50)


class TenantCreate(APIModel):
    """Tenant creation schema"""
    organization_id: uuid.UUID
    name: str = Field(..., min_length=2, max_length=100)
    domain: str = Field(..., min_length=3, max_length=100, pattern=DOMAIN_PATTERN)
    subdomain: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=SUBDOMAIN_PATTERN)
    plan: PlanName = PlanName.BASIC
    features: List[str] = Field(default_factory=list)
    settings: dict = Field(default_factory=dict)
    isolation: Optional[IsolationSettings] = None

    @field_validator("domain", "subdomain", mode="before")
    @classmethod
    def lower_domains(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class TenantUpdate(APIModel):
    """Partial tenant update; status changes here bypass the suspend/reactivate trail"""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    domain: Optional[str] = Field(default=None, min_length=3, max_length=100, pattern=DOMAIN_PATTERN)
    subdomain: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=SUBDOMAIN_PATTERN)
    plan: Optional[PlanName] = None
    features: Optional[List[str]] = None
    settings: Optional[dict] = None
    status: Optional[TenantStatus] = None

    @field_validator("domain", "subdomain", mode="before")
    @classmethod
    def lower_domains(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class TenantSuspend(APIModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TenantResponse(APIModel):
    """Tenant response model"""
    id: uuid.UUID
    name: str
    domain: str
    subdomain: Optional[str]
    plan: PlanName
    features: List[str]
    settings: dict
    status: TenantStatus
    organization_id: uuid.UUID
    created_by: Optional[uuid.UUID]
    suspension_reason: Optional[str]
    suspended_at: Optional[datetime]
    reactivated_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]


class IsolationPolicyResponse(APIModel):
    tenant_id: uuid.UUID
    encryption_required: bool
    encryption_key_id: str
    retention_period_days: int
    backup_retention_days: int
    data_residency: str
    anonymization_required: bool
    cross_tenant_access: bool
