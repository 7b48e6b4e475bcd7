from tenant_hub.models.plan import PlanName
from tenant_hub.models.organization import (
    Organization, OrganizationMembership, OrganizationStatus, OrganizationSize, MembershipRole
)
from tenant_hub.models.user import User, UserRole, UserStatus
from tenant_hub.models.password_reset import PasswordResetToken
from tenant_hub.models.tenant import Tenant, TenantStatus
from tenant_hub.models.isolation import TenantIsolationPolicy
from tenant_hub.models.subscription import Subscription, SubscriptionStatus, BillingCycle
from tenant_hub.models.invoice import Invoice, InvoiceStatus
from tenant_hub.models.usage import UsageRecord
from tenant_hub.models.audit import AuditEvent, RiskLevel
