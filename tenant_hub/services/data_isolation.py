"""
Data isolation policy service
Records per-tenant encryption/retention/residency settings and scopes queries to a tenant
"""

import secrets
import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlmodel import Session

from tenant_hub.core.config import get_settings
from tenant_hub.core.exceptions import NotFoundError
from tenant_hub.models.isolation import TenantIsolationPolicy

logger = structlog.get_logger(__name__)
settings = get_settings()


def initialize_tenant_isolation(
    session: Session,
    tenant_id: uuid.UUID,
    encryption_required: bool = True,
    retention_period: Optional[int] = None,
    data_residency: Optional[str] = None,
) -> TenantIsolationPolicy:
    """
    Record isolation settings for a tenant.

    Re-initializing an existing tenant overwrites its settings and keeps the
    encryption key. The caller owns the transaction.
    """
    policy = session.get(TenantIsolationPolicy, tenant_id)
    values = {
        "encryption_required": encryption_required,
        "retention_period_days": retention_period or settings.DEFAULT_RETENTION_DAYS,
        "data_residency": data_residency or settings.DEFAULT_DATA_RESIDENCY,
        "backup_retention_days": settings.DEFAULT_BACKUP_RETENTION_DAYS,
        "anonymization_required": False,
        "cross_tenant_access": False,
    }

    if policy is None:
        policy = TenantIsolationPolicy(
            tenant_id=tenant_id,
            encryption_key_id=secrets.token_hex(16),
            **values,
        )
        logger.info("tenant_isolation_initialized", tenant_id=str(tenant_id))
    else:
        for key, value in values.items():
            setattr(policy, key, value)
        policy.updated_at = datetime.utcnow()
        logger.info("tenant_isolation_reinitialized", tenant_id=str(tenant_id))

    session.add(policy)
    return policy


def teardown_tenant_isolation(session: Session, tenant_id: uuid.UUID) -> bool:
    """Remove a tenant's isolation scope; returns False if there was none"""
    policy = session.get(TenantIsolationPolicy, tenant_id)
    if policy is None:
        logger.debug("tenant_isolation_absent", tenant_id=str(tenant_id))
        return False

    session.delete(policy)
    logger.info("tenant_isolation_torn_down", tenant_id=str(tenant_id))
    return True


def get_isolation_policy(session: Session, tenant_id: uuid.UUID) -> TenantIsolationPolicy:
    policy = session.get(TenantIsolationPolicy, tenant_id)
    if policy is None:
        raise NotFoundError("Isolation policy not found")
    return policy


def scope_to_tenant(statement, model, tenant_id: uuid.UUID):
    """Restrict a select() over a tenant-owned table to one tenant"""
    if not hasattr(model, "tenant_id"):
        raise TypeError(f"{model.__name__} is not tenant-scoped")
    return statement.where(model.tenant_id == tenant_id)
