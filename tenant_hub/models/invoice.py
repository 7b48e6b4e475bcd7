"""
Invoice model
Generated from a subscription's billing period; immutable once paid
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, Numeric
from decimal import Decimal
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid


class InvoiceStatus(str, Enum):
    """Status of an invoice"""
    PENDING = "pending"                 # Awaiting payment
    PAID = "paid"                       # Settled, immutable
    FAILED = "failed"                   # Last payment attempt failed, may be retried


class Invoice(SQLModel, table=True):
    """Invoice for one billing period of a subscription"""
    
    __tablename__ = "invoices"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    subscription_id: uuid.UUID = Field(foreign_key="subscriptions.id", index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", index=True)
    
    # Amounts
    line_items: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    subtotal: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    tax: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    total: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    currency: str = Field(default="USD", max_length=3)
    
    status: InvoiceStatus = Field(default=InvoiceStatus.PENDING, index=True)
    
    # Billing period
    period_start: datetime
    period_end: datetime
    due_date: datetime
    
    # Payment outcome
    payment_method: Optional[str] = Field(default=None, max_length=50)
    transaction_id: Optional[str] = Field(default=None, max_length=100)
    failure_reason: Optional[str] = Field(default=None, max_length=500)
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: Optional[datetime] = None
    
    def can_pay(self) -> bool:
        """Pending and failed invoices accept payment attempts"""
        return self.status != InvoiceStatus.PAID
    
    def transition_to_paid(self, payment_method: str, transaction_id: Optional[str]) -> None:
        if not self.can_pay():
            raise ValueError("Cannot pay invoice: already paid")
        
        self.status = InvoiceStatus.PAID
        self.payment_method = payment_method
        self.transaction_id = transaction_id
        self.failure_reason = None
        self.paid_at = datetime.utcnow()
        self.updated_at = self.paid_at
    
    def transition_to_failed(self, payment_method: str, reason: str) -> None:
        if not self.can_pay():
            raise ValueError("Cannot fail invoice: already paid")
        
        self.status = InvoiceStatus.FAILED
        self.payment_method = payment_method
        self.failure_reason = reason
        self.failed_at = datetime.utcnow()
        self.updated_at = self.failed_at
