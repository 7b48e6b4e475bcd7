"""
Pydantic schemas for subscriptions, invoices and usage
"""

from pydantic import Field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
import uuid

from tenant_hub.models.invoice import InvoiceStatus
from tenant_hub.models.plan import PlanName
from tenant_hub.models.subscription import BillingCycle, SubscriptionStatus
from tenant_hub.schemas.base import APIModel

CURRENCY_PATTERN = r"^[A-Z]{3}$"


class SubscriptionCreate(APIModel):
    """Organization may be omitted when the request carries a tenant context"""
    organization_id: Optional[uuid.UUID] = None
    plan: PlanName
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    currency: str = Field(default="USD", pattern=CURRENCY_PATTERN)
    trial_period: int = Field(default=0, ge=0, le=30)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, value):
        return value.upper() if isinstance(value, str) else value


class SubscriptionUpdate(APIModel):
    plan: Optional[PlanName] = None
    billing_cycle: Optional[BillingCycle] = None
    status: Optional[SubscriptionStatus] = None
    cancellation_reason: Optional[str] = Field(default=None, max_length=500)


class SubscriptionCancel(APIModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SubscriptionResponse(APIModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    plan: PlanName
    billing_cycle: BillingCycle
    currency: str
    price: float
    status: SubscriptionStatus
    features: List[str]
    limits: dict
    trial_period_days: int
    trial_ends_at: Optional[datetime]
    start_date: datetime
    next_billing_date: datetime
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    version: int
    created_at: datetime
    updated_at: Optional[datetime]


class InvoiceCreate(APIModel):
    subscription_id: uuid.UUID


class PaymentRequest(APIModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, pattern=CURRENCY_PATTERN)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, value):
        return value.upper() if isinstance(value, str) else value


class InvoiceResponse(APIModel):
    id: uuid.UUID
    subscription_id: uuid.UUID
    organization_id: uuid.UUID
    line_items: List[dict]
    subtotal: float
    tax: float
    total: float
    currency: str
    status: InvoiceStatus
    period_start: datetime
    period_end: datetime
    due_date: datetime
    payment_method: Optional[str]
    transaction_id: Optional[str]
    failure_reason: Optional[str]
    paid_at: Optional[datetime]
    failed_at: Optional[datetime]
    created_at: datetime


class PaymentResult(APIModel):
    """Outcome of a payment attempt; failure is a result, not an error"""
    success: bool
    invoice_id: uuid.UUID
    status: InvoiceStatus
    amount: float
    currency: str
    payment_method: str
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class UsageCreate(APIModel):
    organization_id: Optional[uuid.UUID] = None
    metric: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z][A-Za-z0-9_.-]*$")
    value: float = Field(..., ge=0)


class UsageRecordResponse(APIModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    metric: str
    value: float
    billing_period: str
    recorded_at: datetime
