"""
Tenant API endpoints
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session
from typing import Optional
import structlog
import uuid

from tenant_hub.core.database import get_session
from tenant_hub.core.dependencies import get_current_user
from tenant_hub.core.permissions import ensure_organization_admin, ensure_tenant_access
from tenant_hub.models.plan import PlanName
from tenant_hub.models.tenant import TenantStatus
from tenant_hub.models.user import User
from tenant_hub.schemas.envelope import paginate, success
from tenant_hub.schemas.tenant import (
    IsolationPolicyResponse,
    TenantCreate,
    TenantResponse,
    TenantSuspend,
    TenantUpdate,
)
from tenant_hub.services import data_isolation, directory, plans, tenant_registry
from tenant_hub.services.audit import AuditLogger, get_audit_logger
from tenant_hub.services.billing import BillingService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_tenant(
    request: Request,
    tenant_data: TenantCreate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Create a new tenant under an organization the caller administers"""
    directory.get_organization(session, tenant_data.organization_id)
    ensure_organization_admin(session, tenant_data.organization_id, actor)
    
    tenant = tenant_registry.create_tenant(session, tenant_data, created_by=actor.id)
    
    audit.log_event(
        "tenant_created",
        tenant_id=tenant.id,
        user_id=actor.id,
        details={
            "name": tenant.name,
            "domain": tenant.domain,
            "plan": tenant.plan.value,
            "organizationId": tenant.organization_id,
        },
        request=request,
    )
    return success(TenantResponse.model_validate(tenant), message="Tenant created successfully")


@router.get("")
def list_tenants(
    status_filter: Optional[TenantStatus] = Query(default=None, alias="status"),
    plan: Optional[PlanName] = None,
    organization_id: Optional[uuid.UUID] = Query(default=None, alias="organizationId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """List tenants visible to the caller"""
    tenants, total = tenant_registry.list_tenants(
        session,
        actor,
        status=status_filter,
        plan=plan,
        organization_id=organization_id,
        page=page,
        limit=limit,
    )
    return success(
        [TenantResponse.model_validate(tenant) for tenant in tenants],
        pagination=paginate(page, limit, total),
    )


@router.get("/domain/{domain}")
def get_tenant_by_domain(
    domain: str,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Get tenant by domain"""
    tenant = tenant_registry.get_tenant_by_domain(session, domain)
    ensure_tenant_access(session, tenant, actor)
    return success(TenantResponse.model_validate(tenant))


@router.get("/{tenant_id}")
def get_tenant(
    tenant_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Get tenant by ID"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    return success(TenantResponse.model_validate(tenant))


@router.get("/{tenant_id}/config")
def get_tenant_config(
    tenant_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Plan-derived configuration and isolation policy of a tenant"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    policy = data_isolation.get_isolation_policy(session, tenant.id)
    config = plans.tenant_config(tenant.plan)
    config["tenantId"] = tenant.id
    config["enabledFeatures"] = list(tenant.features)
    config["isolation"] = IsolationPolicyResponse.model_validate(policy)
    return success(config)


@router.get("/{tenant_id}/stats")
def get_tenant_stats(
    tenant_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Membership, current-period usage and last activity of a tenant"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    stats = tenant_registry.tenant_stats(session, tenant)
    usage = BillingService(session).get_usage_stats(tenant.organization_id)
    stats["usagePeriod"] = usage["period"]
    stats["usage"] = usage["metrics"]
    return success(stats)


@router.put("/{tenant_id}")
def update_tenant(
    request: Request,
    tenant_id: uuid.UUID,
    tenant_update: TenantUpdate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Update tenant"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    changes = tenant_update.model_dump(mode="json", exclude_unset=True, by_alias=True)
    tenant = tenant_registry.update_tenant(session, tenant, tenant_update)
    
    audit.log_event(
        "tenant_updated",
        tenant_id=tenant.id,
        user_id=actor.id,
        details={"changes": changes},
        request=request,
    )
    return success(TenantResponse.model_validate(tenant), message="Tenant updated successfully")


@router.delete("/{tenant_id}")
def delete_tenant(
    request: Request,
    tenant_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete tenant and tear down its isolation scope"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    details = {"name": tenant.name, "domain": tenant.domain, "organizationId": tenant.organization_id}
    tenant_registry.delete_tenant(session, tenant)
    
    audit.log_event("tenant_deleted", tenant_id=tenant_id, user_id=actor.id, details=details, request=request)
    return success(message="Tenant deleted successfully")


@router.post("/{tenant_id}/suspend")
def suspend_tenant(
    request: Request,
    tenant_id: uuid.UUID,
    body: Optional[TenantSuspend] = None,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Suspend tenant, recording the reason"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    reason = body.reason if body else None
    tenant = tenant_registry.suspend_tenant(session, tenant, reason)
    
    audit.log_event("tenant_suspended", tenant_id=tenant.id, user_id=actor.id, details={"reason": reason}, request=request)
    return success(TenantResponse.model_validate(tenant), message="Tenant suspended successfully")


@router.post("/{tenant_id}/reactivate")
def reactivate_tenant(
    request: Request,
    tenant_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Reactivate a suspended tenant"""
    tenant = tenant_registry.get_tenant(session, tenant_id)
    ensure_tenant_access(session, tenant, actor)
    
    previous_reason = tenant.suspension_reason
    tenant = tenant_registry.reactivate_tenant(session, tenant)
    
    audit.log_event(
        "tenant_reactivated",
        tenant_id=tenant.id,
        user_id=actor.id,
        details={"previousSuspensionReason": previous_reason},
        request=request,
    )
    return success(TenantResponse.model_validate(tenant), message="Tenant reactivated successfully")
