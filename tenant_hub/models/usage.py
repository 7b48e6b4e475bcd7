"""
Usage record model - raw append-only metering samples
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
import uuid


class UsageRecord(SQLModel, table=True):
    """Single metered usage sample attributed to an organization"""
    
    __tablename__ = "usage_records"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    metric: str = Field(index=True, max_length=50)
    value: float
    billing_period: str = Field(index=True, max_length=7, description="YYYY-MM")
    recorded_at: datetime = Field(default_factory=datetime.utcnow)
