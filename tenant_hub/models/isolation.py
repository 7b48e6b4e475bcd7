"""
Per-tenant data isolation policy
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
import uuid


class TenantIsolationPolicy(SQLModel, table=True):
    """Encryption, retention and residency settings for one tenant's data"""
    
    __tablename__ = "tenant_isolation_policies"
    
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", primary_key=True)
    
    encryption_required: bool = Field(default=True)
    encryption_key_id: str = Field(max_length=64, description="Identifier of the tenant's data encryption key")
    retention_period_days: int = Field(default=90)
    backup_retention_days: int = Field(default=30)
    data_residency: str = Field(default="global", max_length=50)
    anonymization_required: bool = Field(default=False)
    cross_tenant_access: bool = Field(default=False)
    
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
