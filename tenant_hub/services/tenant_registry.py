"""
Tenant registry
Creation, lookup, update, suspension and deletion of tenants
"""

from datetime import datetime
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from tenant_hub.core.exceptions import ConflictError, NotFoundError
from tenant_hub.models.audit import AuditEvent
from tenant_hub.models.organization import Organization, OrganizationMembership
from tenant_hub.models.tenant import Tenant, TenantStatus
from tenant_hub.models.user import User
from tenant_hub.schemas.tenant import TenantCreate, TenantUpdate
from tenant_hub.services import data_isolation

logger = structlog.get_logger(__name__)


def _ensure_unique_domains(
    session: Session,
    domain: Optional[str],
    subdomain: Optional[str],
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    """Friendly pre-check; the unique constraints remain the real guard"""
    conditions = []
    if domain:
        conditions.append(Tenant.domain == domain)
    if subdomain:
        conditions.append(Tenant.subdomain == subdomain)
    if not conditions:
        return

    statement = select(Tenant).where(or_(*conditions))
    if exclude_id is not None:
        statement = statement.where(Tenant.id != exclude_id)

    existing = session.exec(statement).first()
    if existing is None:
        return
    if domain and existing.domain == domain:
        raise ConflictError("Domain already in use")
    raise ConflictError("Subdomain already in use")


def _commit_or_conflict(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Domain or subdomain already in use")


def create_tenant(session: Session, data: TenantCreate, created_by: Optional[uuid.UUID] = None) -> Tenant:
    """Persist a new active tenant and initialize its isolation scope"""
    if session.get(Organization, data.organization_id) is None:
        raise NotFoundError("Organization not found")

    _ensure_unique_domains(session, data.domain, data.subdomain)

    tenant = Tenant(
        name=data.name,
        domain=data.domain,
        subdomain=data.subdomain,
        plan=data.plan,
        features=list(data.features),
        settings=dict(data.settings),
        status=TenantStatus.ACTIVE,
        organization_id=data.organization_id,
        created_by=created_by,
    )
    session.add(tenant)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Domain or subdomain already in use")

    isolation = data.isolation
    data_isolation.initialize_tenant_isolation(
        session,
        tenant.id,
        encryption_required=isolation.encryption_required if isolation else True,
        retention_period=isolation.retention_period if isolation else None,
        data_residency=isolation.data_residency if isolation else None,
    )

    _commit_or_conflict(session)
    session.refresh(tenant)
    logger.info("tenant_created", tenant_id=str(tenant.id), domain=tenant.domain)
    return tenant


def get_tenant(session: Session, tenant_id: uuid.UUID) -> Tenant:
    tenant = session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def get_tenant_by_domain(session: Session, domain: str) -> Tenant:
    """Domains are stored lower-case, so lookups ignore case"""
    tenant = session.exec(select(Tenant).where(Tenant.domain == domain.strip().lower())).first()
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def resolve_tenant(session: Session, identifier: str) -> Tenant:
    """Resolve an inbound tenant identifier: tenant ID first, then domain"""
    try:
        tenant_id = uuid.UUID(identifier)
    except ValueError:
        return get_tenant_by_domain(session, identifier)
    return get_tenant(session, tenant_id)


def update_tenant(session: Session, tenant: Tenant, changes: TenantUpdate) -> Tenant:
    """Partial update; domain and subdomain uniqueness is re-checked"""
    data = {
        key: value
        for key, value in changes.model_dump(exclude_unset=True).items()
        if value is not None or key == "subdomain"
    }
    if not data:
        return tenant

    domain = data.get("domain") if data.get("domain") != tenant.domain else None
    subdomain = data.get("subdomain") if data.get("subdomain") != tenant.subdomain else None
    _ensure_unique_domains(session, domain, subdomain, exclude_id=tenant.id)

    for key, value in data.items():
        setattr(tenant, key, value)
    tenant.updated_at = datetime.utcnow()

    session.add(tenant)
    _commit_or_conflict(session)
    session.refresh(tenant)
    logger.info("tenant_updated", tenant_id=str(tenant.id), fields=sorted(data))
    return tenant


def delete_tenant(session: Session, tenant: Tenant) -> None:
    """Delete a tenant together with its isolation scope"""
    tenant_id = tenant.id
    data_isolation.teardown_tenant_isolation(session, tenant_id)
    session.flush()
    session.delete(tenant)
    session.commit()
    logger.info("tenant_deleted", tenant_id=str(tenant_id))


def suspend_tenant(session: Session, tenant: Tenant, reason: Optional[str]) -> Tenant:
    tenant.transition_to_suspended(reason)
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    logger.info("tenant_suspended", tenant_id=str(tenant.id), reason=reason)
    return tenant


def reactivate_tenant(session: Session, tenant: Tenant) -> Tenant:
    try:
        tenant.transition_to_active()
    except ValueError as e:
        raise ConflictError(str(e))

    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    logger.info("tenant_reactivated", tenant_id=str(tenant.id))
    return tenant


def validate_tenant_access(session: Session, tenant: Tenant, user: Optional[User]) -> bool:
    """True iff the user is a global admin or a member of the tenant's owning organization"""
    if user is None:
        return False
    if user.is_admin:
        return True

    membership = session.exec(
        select(OrganizationMembership).where(
            OrganizationMembership.organization_id == tenant.organization_id,
            OrganizationMembership.user_id == user.id,
        )
    ).first()
    return membership is not None


def list_tenants(
    session: Session,
    user: User,
    status: Optional[TenantStatus] = None,
    plan: Optional[str] = None,
    organization_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Tenant], int]:
    """Page through tenants visible to the user"""
    statement = select(Tenant)
    if not user.is_admin:
        member_orgs = select(OrganizationMembership.organization_id).where(
            OrganizationMembership.user_id == user.id
        )
        statement = statement.where(Tenant.organization_id.in_(member_orgs))
    if status is not None:
        statement = statement.where(Tenant.status == status)
    if plan is not None:
        statement = statement.where(Tenant.plan == plan)
    if organization_id is not None:
        statement = statement.where(Tenant.organization_id == organization_id)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    items = session.exec(
        statement.order_by(Tenant.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(items), total


def count_tenants(session: Session, organization_id: uuid.UUID) -> int:
    return session.exec(
        select(func.count()).select_from(Tenant).where(Tenant.organization_id == organization_id)
    ).one()


def last_activity(session: Session, tenant: Tenant) -> datetime:
    """Time of the tenant's latest audit event, or of its last change when it has none"""
    latest = session.exec(
        data_isolation.scope_to_tenant(select(func.max(AuditEvent.created_at)), AuditEvent, tenant.id)
    ).one()
    return latest or tenant.updated_at or tenant.created_at


def tenant_stats(session: Session, tenant: Tenant) -> dict:
    members = session.exec(
        select(func.count()).select_from(OrganizationMembership).where(
            OrganizationMembership.organization_id == tenant.organization_id
        )
    ).one()
    return {
        "tenantId": tenant.id,
        "organizationId": tenant.organization_id,
        "status": tenant.status.value,
        "plan": tenant.plan.value,
        "memberCount": members,
        "organizationTenants": count_tenants(session, tenant.organization_id),
        "lastActivity": last_activity(session, tenant),
    }
