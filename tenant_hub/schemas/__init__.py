"""
Schemas for API responses and requests
"""

from tenant_hub.schemas.billing import (
    InvoiceResponse,
    PaymentResult,
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionUpdate,
)
from tenant_hub.schemas.envelope import paginate, success
from tenant_hub.schemas.organization import OrganizationCreate, OrganizationResponse
from tenant_hub.schemas.tenant import TenantCreate, TenantResponse, TenantUpdate
from tenant_hub.schemas.token import TokenResponse
from tenant_hub.schemas.user import UserCreate, UserLogin, UserResponse

__all__ = [
    "InvoiceResponse",
    "OrganizationCreate",
    "OrganizationResponse",
    "PaymentResult",
    "SubscriptionCreate",
    "SubscriptionResponse",
    "SubscriptionUpdate",
    "TenantCreate",
    "TenantResponse",
    "TenantUpdate",
    "TokenResponse",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "paginate",
    "success",
]
