"""
Subscription model
One current subscription per organization, cancellation is terminal
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, Numeric
from decimal import Decimal
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid

from tenant_hub.models.plan import PlanName


class BillingCycle(str, Enum):
    """Billing cycle of a subscription"""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Status of a subscription"""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"          # Terminal


class Subscription(SQLModel, table=True):
    """Billing plan and status of an organization"""
    
    __tablename__ = "subscriptions"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    
    # Set to organization_id while the subscription is current, cleared on cancellation.
    # The unique constraint allows only one current subscription per organization.
    current_for_organization_id: Optional[uuid.UUID] = Field(
        default=None,
        unique=True,
        nullable=True,
        description="Organization this subscription is the current one for"
    )
    
    plan: PlanName = Field(index=True)
    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY)
    currency: str = Field(default="USD", max_length=3)
    price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE, index=True)
    
    # Snapshot of the plan catalog at subscription time
    features: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    limits: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    
    # Trial
    trial_period_days: int = Field(default=0, ge=0, le=30)
    trial_ends_at: Optional[datetime] = None
    
    # Billing dates
    start_date: datetime = Field(default_factory=datetime.utcnow)
    next_billing_date: datetime
    
    # Cancellation
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = Field(default=None, max_length=500)
    
    version: int = Field(default=1, description="Incremented on every mutation")
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED
    
    def can_modify(self) -> bool:
        """Cancelled subscriptions are frozen"""
        return not self.is_cancelled()
    
    def is_in_trial(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.trial_ends_at is not None and self.trial_ends_at > now
    
    def touch(self) -> None:
        """Record a mutation"""
        self.updated_at = datetime.utcnow()
        self.version += 1
    
    def transition_to_cancelled(self, reason: Optional[str]) -> None:
        """Cancel subscription (terminal)"""
        if not self.can_modify():
            raise ValueError("Cannot cancel subscription: already cancelled")
        
        self.status = SubscriptionStatus.CANCELLED
        self.cancellation_reason = reason
        self.cancelled_at = datetime.utcnow()
        self.current_for_organization_id = None
        self.touch()
