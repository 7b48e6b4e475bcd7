"""
Tenant model - Multi-tenancy foundation
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid

from tenant_hub.models.plan import PlanName


class TenantStatus(str, Enum):
    """Tenant status; only suspend/reactivate are dedicated transitions"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Tenant(SQLModel, table=True):
    """Tenant model for multi-tenant architecture"""
    
    __tablename__ = "tenants"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=100)
    domain: str = Field(unique=True, index=True, max_length=100, description="Globally unique tenant domain")
    subdomain: Optional[str] = Field(default=None, unique=True, max_length=50)
    
    # Plan and feature flags
    plan: PlanName = Field(default=PlanName.BASIC)
    features: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    
    status: TenantStatus = Field(default=TenantStatus.ACTIVE, index=True)
    
    # Ownership
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    created_by: Optional[uuid.UUID] = Field(default=None)
    
    # Suspension trail
    suspension_reason: Optional[str] = Field(default=None, max_length=500)
    suspended_at: Optional[datetime] = None
    reactivated_at: Optional[datetime] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    
    def can_reactivate(self) -> bool:
        """Only suspended tenants can be reactivated"""
        return self.status == TenantStatus.SUSPENDED
    
    def transition_to_suspended(self, reason: Optional[str]) -> None:
        """Suspend tenant; repeated calls overwrite reason and timestamp"""
        self.status = TenantStatus.SUSPENDED
        self.suspension_reason = reason
        self.suspended_at = datetime.utcnow()
        self.updated_at = self.suspended_at
    
    def transition_to_active(self) -> None:
        """Reactivate a suspended tenant"""
        if not self.can_reactivate():
            raise ValueError(f"Cannot reactivate tenant in {self.status.value} status")
        
        self.status = TenantStatus.ACTIVE
        self.suspension_reason = None
        self.suspended_at = None
        self.reactivated_at = datetime.utcnow()
        self.updated_at = self.reactivated_at
