"""
Audit event model - append-only record of administrative actions
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AuditEvent(SQLModel, table=True):
    """Audit trail entry; never updated or deleted"""
    
    __tablename__ = "audit_events"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    action: str = Field(index=True, max_length=100)
    
    # No foreign keys: events outlive the tenants and users they mention
    tenant_id: Optional[uuid.UUID] = Field(default=None, index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, index=True)
    
    details: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    risk_level: RiskLevel = Field(default=RiskLevel.LOW, index=True)
    
    request_id: Optional[str] = Field(default=None, max_length=64)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
