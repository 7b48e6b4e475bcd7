"""
Organization API endpoints
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session
from typing import Optional
import structlog
import uuid

from tenant_hub.core.database import get_session
from tenant_hub.core.dependencies import get_current_user, get_tenant_context
from tenant_hub.core.permissions import (
    ensure_organization_admin,
    ensure_organization_member,
    ensure_tenant_matches_organization,
)
from tenant_hub.core.tenant_middleware import TenantContext
from tenant_hub.models.user import User
from tenant_hub.schemas.envelope import paginate, success
from tenant_hub.schemas.organization import (
    MembershipCreate,
    MembershipResponse,
    OrganizationCreate,
    OrganizationResponse,
    OrganizationUpdate,
)
from tenant_hub.schemas.user import UserResponse
from tenant_hub.services import directory
from tenant_hub.services.audit import AuditLogger, get_audit_logger

logger = structlog.get_logger(__name__)
router = APIRouter()


def _tenant_id(tenant: Optional[TenantContext]):
    return tenant.tenant_id if tenant else None


@router.post("", status_code=status.HTTP_201_CREATED)
def create_organization(
    request: Request,
    organization_data: OrganizationCreate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Create an organization; the creator becomes its admin"""
    organization = directory.create_organization(session, organization_data, actor)
    
    audit.log_event(
        "organization_created",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "name": organization.name},
        request=request,
    )
    return success(OrganizationResponse.model_validate(organization), message="Organization created successfully")


@router.get("")
def list_organizations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """List organizations visible to the caller"""
    organizations, total = directory.list_organizations(session, actor, page=page, limit=limit)
    return success(
        [OrganizationResponse.model_validate(organization) for organization in organizations],
        pagination=paginate(page, limit, total),
    )


@router.get("/{organization_id}")
def get_organization(
    organization_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Get organization by ID"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_member(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    return success(OrganizationResponse.model_validate(organization))


@router.put("/{organization_id}")
def update_organization(
    request: Request,
    organization_id: uuid.UUID,
    organization_update: OrganizationUpdate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Update organization"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_admin(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    
    changes = organization_update.model_dump(mode="json", exclude_unset=True, by_alias=True)
    organization = directory.update_organization(session, organization, organization_update)
    
    audit.log_event(
        "organization_updated",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "changes": changes},
        request=request,
    )
    return success(OrganizationResponse.model_validate(organization), message="Organization updated successfully")


@router.delete("/{organization_id}")
def delete_organization(
    request: Request,
    organization_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete an organization that owns no tenants and has no billing history"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_admin(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    
    name = organization.name
    directory.delete_organization(session, organization)
    
    audit.log_event(
        "organization_deleted",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization_id, "name": name},
        request=request,
    )
    return success(message="Organization deleted successfully")


@router.get("/{organization_id}/users")
def list_organization_members(
    organization_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Members of an organization with their organization roles"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_member(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    
    rows = directory.list_members(session, organization.id)
    return success([
        {
            "user": UserResponse.model_validate(user),
            "membership": MembershipResponse.model_validate(membership),
        }
        for user, membership in rows
    ])


@router.post("/{organization_id}/users", status_code=status.HTTP_201_CREATED)
def add_organization_member(
    request: Request,
    organization_id: uuid.UUID,
    membership_data: MembershipCreate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Add a user to the organization"""
    organization = directory.get_organization(session, organization_id)
    user = directory.get_user(session, membership_data.user_id)
    ensure_organization_admin(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    
    membership = directory.add_user_to_organization(session, organization, user, membership_data.role)
    
    audit.log_event(
        "organization_member_added",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "memberId": user.id, "role": membership.role.value},
        request=request,
    )
    return success(MembershipResponse.model_validate(membership), message="User added to organization")


@router.delete("/{organization_id}/users/{user_id}")
def remove_organization_member(
    request: Request,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Remove a user from the organization"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_admin(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    
    directory.remove_user_from_organization(session, organization.id, user_id)
    
    audit.log_event(
        "organization_member_removed",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "memberId": user_id},
        request=request,
    )
    return success(message="User removed from organization")


@router.get("/{organization_id}/stats")
def get_organization_stats(
    organization_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
):
    """Membership and tenant statistics for an organization"""
    organization = directory.get_organization(session, organization_id)
    ensure_organization_member(session, organization.id, actor)
    ensure_tenant_matches_organization(tenant, organization.id)
    return success(directory.organization_stats(session, organization))
