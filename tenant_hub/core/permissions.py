"""
Authorization policy layer
Role permissions plus the ownership checks every route runs before mutating
"""

from enum import Enum
from typing import Optional, Set
import uuid

from fastapi import Depends
from sqlmodel import Session

from tenant_hub.core.dependencies import get_current_user
from tenant_hub.core.exceptions import ForbiddenError
from tenant_hub.core.tenant_middleware import TenantContext
from tenant_hub.models.organization import MembershipRole
from tenant_hub.models.tenant import Tenant
from tenant_hub.models.user import User
from tenant_hub.services import directory
from tenant_hub.services.tenant_registry import validate_tenant_access


class Permission(str, Enum):
    """Permission definitions"""
    # User permissions
    USER_LIST = "user:list"
    USER_DELETE = "user:delete"
    USER_MANAGE = "user:manage"            # Edit other users, roles and status
    
    # Tenant permissions
    TENANT_VIEW_ALL = "tenant:view_all"
    
    # Organization permissions
    ORGANIZATION_MANAGE_ALL = "organization:manage_all"
    
    # Billing permissions
    BILLING_MANAGE_ALL = "billing:manage_all"


# Role permission mapping
ROLE_PERMISSIONS = {
    "admin": set(Permission),
    "manager": {
        Permission.USER_LIST,
    },
    "user": set(),
}


def get_permissions_for_role(role: str) -> Set[Permission]:
    """Get permissions for a given role"""
    return ROLE_PERMISSIONS.get(str(role).lower(), set())


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions


def user_has_permission(user: User, permission: Permission) -> bool:
    return has_permission(permission, get_permissions_for_role(user.role.value))


def require_permission(required_permission: Permission):
    """Dependency factory: the current user must hold the permission"""
    def check_permission(user: User = Depends(get_current_user)) -> User:
        if not user_has_permission(user, required_permission):
            raise ForbiddenError(f"Permission required: {required_permission.value}")
        return user
    return check_permission


def ensure_permission(user: User, permission: Permission) -> None:
    if not user_has_permission(user, permission):
        raise ForbiddenError(f"Permission required: {permission.value}")


def ensure_admin(user: Optional[User]) -> None:
    if user is None or not user.is_admin:
        raise ForbiddenError("Admin role required")


def ensure_self_or_admin(user: User, target_user_id: uuid.UUID) -> None:
    if user.id != target_user_id and not user.is_admin:
        raise ForbiddenError("Access denied")


def ensure_tenant_access(session: Session, tenant: Tenant, user: Optional[User]) -> None:
    """Gate for every tenant-scoped read or mutation"""
    if user is not None and user_has_permission(user, Permission.TENANT_VIEW_ALL):
        return
    if not validate_tenant_access(session, tenant, user):
        raise ForbiddenError("Access denied to this tenant")


def ensure_organization_member(
    session: Session,
    organization_id: uuid.UUID,
    user: User,
    bypass: Permission = Permission.ORGANIZATION_MANAGE_ALL,
) -> None:
    if user_has_permission(user, bypass):
        return
    if directory.get_membership(session, organization_id, user.id) is None:
        raise ForbiddenError("Access denied to this organization")


def ensure_organization_admin(
    session: Session,
    organization_id: uuid.UUID,
    user: User,
    bypass: Permission = Permission.ORGANIZATION_MANAGE_ALL,
) -> None:
    """Holders of the bypass permission and the organization's own admins may manage it"""
    if user_has_permission(user, bypass):
        return
    membership = directory.get_membership(session, organization_id, user.id)
    if membership is None or membership.role != MembershipRole.ADMIN:
        raise ForbiddenError("Organization admin role required")


def ensure_tenant_matches_organization(
    tenant: Optional[TenantContext], organization_id: uuid.UUID
) -> None:
    """A request scoped to a tenant may only reach its owning organization's data"""
    if tenant is not None and tenant.organization_id != organization_id:
        raise ForbiddenError("Resource does not belong to the current tenant")
