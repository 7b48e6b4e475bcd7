"""
Billing API endpoints
Subscriptions, invoices, payments, usage metering and the plan catalog
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session
from typing import Optional
import structlog
import uuid

from tenant_hub.core.database import get_session
from tenant_hub.core.dependencies import get_current_user, get_tenant_context
from tenant_hub.core.exceptions import ForbiddenError, ValidationError
from tenant_hub.core.permissions import (
    Permission,
    ensure_organization_admin,
    ensure_organization_member,
    ensure_tenant_matches_organization,
)
from tenant_hub.core.tenant_middleware import TenantContext
from tenant_hub.models.invoice import InvoiceStatus
from tenant_hub.models.user import User
from tenant_hub.schemas.billing import (
    InvoiceCreate,
    InvoiceResponse,
    PaymentRequest,
    PaymentResult,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionUpdate,
    UsageCreate,
    UsageRecordResponse,
)
from tenant_hub.schemas.envelope import paginate, success
from tenant_hub.services import plans
from tenant_hub.services.audit import AuditLogger, get_audit_logger
from tenant_hub.services.billing import BillingService
from tenant_hub.services.payments import PaymentGateway, get_payment_gateway

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_billing_service(
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BillingService:
    return BillingService(session, gateway)


def resolve_organization_id(
    tenant: Optional[TenantContext],
    supplied: Optional[uuid.UUID],
) -> uuid.UUID:
    """The tenant context decides the organization; explicit IDs only apply without one"""
    if tenant is not None:
        if supplied is not None and supplied != tenant.organization_id:
            raise ForbiddenError("Organization does not own the current tenant")
        return tenant.organization_id
    if supplied is None:
        raise ValidationError("organizationId is required when no tenant is specified")
    return supplied


def _tenant_id(tenant: Optional[TenantContext]):
    return tenant.tenant_id if tenant else None


# Plans

@router.get("/plans")
def list_plans():
    """Plan catalog (no authentication required)"""
    return success([plan.to_dict() for plan in plans.list_plans()])


# Subscriptions

@router.post("/subscriptions", status_code=status.HTTP_201_CREATED)
def create_subscription(
    request: Request,
    subscription_data: SubscriptionCreate,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Create the organization's subscription"""
    organization_id = resolve_organization_id(tenant, subscription_data.organization_id)
    billing.get_organization(organization_id)
    ensure_organization_admin(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    
    subscription = billing.create_subscription(organization_id, subscription_data)
    
    audit.log_event(
        "subscription_created",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={
            "subscriptionId": subscription.id,
            "organizationId": organization_id,
            "plan": subscription.plan.value,
            "billingCycle": subscription.billing_cycle.value,
            "price": subscription.price,
            "trialPeriod": subscription.trial_period_days,
        },
        request=request,
    )
    return success(SubscriptionResponse.model_validate(subscription), message="Subscription created successfully")


@router.get("/subscriptions")
def get_current_subscription(
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Current subscription of the organization"""
    organization_id = resolve_organization_id(tenant, organization_id)
    billing.get_organization(organization_id)
    ensure_organization_member(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    
    subscription = billing.get_subscription_by_organization(organization_id)
    return success(SubscriptionResponse.model_validate(subscription))


@router.get("/subscriptions/{subscription_id}")
def get_subscription(
    subscription_id: uuid.UUID,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Get subscription by ID"""
    subscription = billing.get_subscription(subscription_id)
    ensure_organization_member(billing.session, subscription.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, subscription.organization_id)
    return success(SubscriptionResponse.model_validate(subscription))


@router.put("/subscriptions/{subscription_id}")
def update_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    subscription_update: SubscriptionUpdate,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Change plan, billing cycle or status"""
    subscription = billing.get_subscription(subscription_id)
    ensure_organization_admin(billing.session, subscription.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, subscription.organization_id)
    
    changes = subscription_update.model_dump(mode="json", exclude_unset=True, by_alias=True)
    subscription = billing.update_subscription(subscription, subscription_update)
    
    action = "subscription_cancelled" if subscription.is_cancelled() else "subscription_updated"
    audit.log_event(
        action,
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"subscriptionId": subscription.id, "changes": changes},
        request=request,
    )
    return success(SubscriptionResponse.model_validate(subscription), message="Subscription updated successfully")


@router.delete("/subscriptions/{subscription_id}")
def cancel_subscription(
    request: Request,
    subscription_id: uuid.UUID,
    body: Optional[SubscriptionCancel] = None,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Cancel subscription (terminal)"""
    subscription = billing.get_subscription(subscription_id)
    ensure_organization_admin(billing.session, subscription.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, subscription.organization_id)
    
    reason = body.reason if body else None
    subscription = billing.cancel_subscription(subscription, reason)
    
    audit.log_event(
        "subscription_cancelled",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"subscriptionId": subscription.id, "reason": reason},
        request=request,
    )
    return success(SubscriptionResponse.model_validate(subscription), message="Subscription cancelled successfully")


# Invoices

@router.post("/invoices", status_code=status.HTTP_201_CREATED)
def create_invoice(
    request: Request,
    invoice_data: InvoiceCreate,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Invoice the subscription's current billing period"""
    subscription = billing.get_subscription(invoice_data.subscription_id)
    ensure_organization_admin(billing.session, subscription.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, subscription.organization_id)
    
    invoice = billing.create_invoice(subscription.id)
    
    audit.log_event(
        "invoice_created",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"invoiceId": invoice.id, "subscriptionId": subscription.id, "total": invoice.total},
        request=request,
    )
    return success(InvoiceResponse.model_validate(invoice), message="Invoice created successfully")


@router.get("/invoices")
def list_invoices(
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    status_filter: Optional[InvoiceStatus] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Invoices of the organization filtered by status and creation date"""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    
    organization_id = resolve_organization_id(tenant, organization_id)
    billing.get_organization(organization_id)
    ensure_organization_member(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    
    invoices, total = billing.get_invoices(
        organization_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return success(
        [InvoiceResponse.model_validate(invoice) for invoice in invoices],
        pagination=paginate(page, limit, total),
    )


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: uuid.UUID,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Get invoice by ID"""
    invoice = billing.get_invoice(invoice_id)
    ensure_organization_member(billing.session, invoice.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, invoice.organization_id)
    return success(InvoiceResponse.model_validate(invoice))


@router.post("/invoices/{invoice_id}/payment")
def process_payment(
    request: Request,
    invoice_id: uuid.UUID,
    payment_data: PaymentRequest,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Pay an invoice; a declined payment is reported with success=false"""
    invoice = billing.get_invoice(invoice_id, for_update=True)
    ensure_organization_admin(billing.session, invoice.organization_id, actor, Permission.BILLING_MANAGE_ALL)
    ensure_tenant_matches_organization(tenant, invoice.organization_id)
    
    result = PaymentResult.model_validate(billing.process_payment(invoice, payment_data))
    
    audit.log_event(
        "payment_processed",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={
            "invoiceId": invoice.id,
            "success": result.success,
            "amount": result.amount,
            "paymentMethod": result.payment_method,
            "error": result.error,
        },
        request=request,
    )
    body = success(result, message="Payment processed" if result.success else "Payment failed")
    body["success"] = result.success
    return body


# Usage

@router.post("/usage", status_code=status.HTTP_201_CREATED)
def track_usage(
    request: Request,
    usage_data: UsageCreate,
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Record a usage sample"""
    organization_id = resolve_organization_id(tenant, usage_data.organization_id)
    billing.get_organization(organization_id)
    ensure_organization_member(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    
    record = billing.track_usage(organization_id, usage_data.metric, usage_data.value)
    
    audit.log_event(
        "usage_tracked",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization_id, "metric": record.metric, "value": record.value},
        request=request,
    )
    return success(UsageRecordResponse.model_validate(record), message="Usage tracked successfully")


@router.get("/usage/stats")
def get_usage_stats(
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    period: str = Query(default="current"),
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Usage per metric for a period ('current' or YYYY-MM) against plan limits"""
    organization_id = resolve_organization_id(tenant, organization_id)
    billing.get_organization(organization_id)
    ensure_organization_member(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    return success(billing.get_usage_stats(organization_id, period))


@router.get("/summary")
def get_billing_summary(
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    billing: BillingService = Depends(get_billing_service),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Subscription, recent invoices and usage in one payload"""
    organization_id = resolve_organization_id(tenant, organization_id)
    billing.get_organization(organization_id)
    ensure_organization_member(billing.session, organization_id, actor, Permission.BILLING_MANAGE_ALL)
    
    summary = billing.get_billing_summary(organization_id)
    subscription = summary["subscription"]
    summary["subscription"] = SubscriptionResponse.model_validate(subscription) if subscription else None
    summary["recentInvoices"] = [InvoiceResponse.model_validate(invoice) for invoice in summary["recentInvoices"]]
    return success(summary)
