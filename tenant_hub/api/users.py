"""
User API endpoints
Registration, login, profile management, password flows and memberships
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session
from typing import Optional
import structlog
import uuid

from tenant_hub.core.auth import create_access_token
from tenant_hub.core.config import get_settings
from tenant_hub.core.database import get_session
from tenant_hub.core.dependencies import get_current_user, get_current_user_optional, get_tenant_context
from tenant_hub.core.exceptions import ForbiddenError
from tenant_hub.core.permissions import (
    Permission,
    ensure_admin,
    ensure_organization_admin,
    ensure_permission,
    ensure_self_or_admin,
    require_permission,
    user_has_permission,
)
from tenant_hub.core.tenant_middleware import TenantContext
from tenant_hub.models.user import User, UserRole, UserStatus
from tenant_hub.schemas.envelope import paginate, success
from tenant_hub.schemas.organization import MembershipResponse, OrganizationResponse, UserOrganizationAdd
from tenant_hub.schemas.token import TokenResponse
from tenant_hub.schemas.user import (
    PasswordChange,
    PasswordResetRequest,
    PasswordSet,
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
)
from tenant_hub.services import directory
from tenant_hub.services.audit import AuditLogger, get_audit_logger

logger = structlog.get_logger(__name__)
router = APIRouter()
settings = get_settings()


def _tenant_id(tenant: Optional[TenantContext]) -> Optional[uuid.UUID]:
    return tenant.tenant_id if tenant else None


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    request: Request,
    user_data: UserCreate,
    session: Session = Depends(get_session),
    actor: Optional[User] = Depends(get_current_user_optional),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Register a new user; elevated roles can only be assigned by an admin"""
    if user_data.role != UserRole.USER:
        ensure_admin(actor)
    
    user = directory.create_user(session, user_data)
    
    audit.log_event(
        "user_created",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id if actor else user.id,
        details={"email": user.email, "role": user.role.value},
        request=request,
    )
    return success(UserResponse.model_validate(user), message="User created successfully")


@router.post("/login")
def login_user(
    request: Request,
    login_data: UserLogin,
    session: Session = Depends(get_session),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Login user and issue an access token"""
    user = directory.authenticate(session, login_data.email, login_data.password)
    
    access_token = create_access_token(user_id=user.id, role=user.role.value)
    audit.log_event("user_login", tenant_id=_tenant_id(tenant), user_id=user.id, request=request)
    return success(TokenResponse(access_token=access_token, user=UserResponse.model_validate(user)))


@router.post("/reset-password")
def reset_password(
    request: Request,
    reset_data: PasswordResetRequest,
    session: Session = Depends(get_session),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Issue a password reset token; the answer is the same for unknown emails"""
    user, token = directory.request_password_reset(session, reset_data.email)
    
    data = None
    if user is not None:
        audit.log_event("password_reset_requested", tenant_id=_tenant_id(tenant), user_id=user.id, request=request)
        if settings.EXPOSE_RESET_TOKENS:
            data = {"resetToken": token, "expiresInMinutes": settings.PASSWORD_RESET_TOKEN_TTL_MINUTES}
    
    return success(data, message="If the email is registered, a password reset link has been sent")


@router.post("/set-password")
def set_password(
    request: Request,
    password_data: PasswordSet,
    session: Session = Depends(get_session),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Set a new password with a valid reset token"""
    user = directory.set_password_with_token(session, password_data.token, password_data.new_password)
    
    audit.log_event("password_reset_completed", tenant_id=_tenant_id(tenant), user_id=user.id, request=request)
    return success(message="Password has been reset successfully")


@router.get("")
def list_users(
    status_filter: Optional[UserStatus] = Query(default=None, alias="status"),
    role: Optional[UserRole] = None,
    email_verified: Optional[bool] = Query(default=None, alias="emailVerified"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
    actor: User = Depends(require_permission(Permission.USER_LIST)),
):
    """List users with filters and pagination"""
    users, total = directory.list_users(
        session,
        status=status_filter,
        role=role,
        email_verified=email_verified,
        page=page,
        limit=limit,
    )
    return success(
        [UserResponse.model_validate(user) for user in users],
        pagination=paginate(page, limit, total),
    )


@router.get("/stats/overview")
def get_user_stats(
    session: Session = Depends(get_session),
    actor: User = Depends(require_permission(Permission.USER_LIST)),
):
    """Head counts across the user directory"""
    return success(directory.user_stats(session))


@router.get("/{user_id}")
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Get user by ID"""
    user = directory.get_user(session, user_id)
    ensure_self_or_admin(actor, user.id)
    return success(UserResponse.model_validate(user))


@router.put("/{user_id}")
def update_user(
    request: Request,
    user_id: uuid.UUID,
    user_update: UserUpdate,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Update user profile; role, status and verification need user management rights"""
    user = directory.get_user(session, user_id)
    ensure_self_or_admin(actor, user.id)
    
    privileged = {"role", "status", "email_verified"} & user_update.model_fields_set
    if privileged and not user_has_permission(actor, Permission.USER_MANAGE):
        raise ForbiddenError("Admin role required to change role, status or verification")
    
    changes = user_update.model_dump(mode="json", exclude_unset=True, by_alias=True)
    user = directory.update_user(session, user, user_update)
    
    action = "permissions_changed" if "role" in privileged else "user_updated"
    audit.log_event(
        action,
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"targetUserId": user.id, "changes": changes},
        request=request,
    )
    return success(UserResponse.model_validate(user), message="User updated successfully")


@router.delete("/{user_id}")
def delete_user(
    request: Request,
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Delete user; needs the user delete permission"""
    user = directory.get_user(session, user_id)
    ensure_permission(actor, Permission.USER_DELETE)
    
    email = user.email
    directory.delete_user(session, user)
    
    audit.log_event(
        "user_deleted",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"targetUserId": user_id, "email": email},
        request=request,
    )
    return success(message="User deleted successfully")


@router.post("/{user_id}/change-password")
def change_password(
    request: Request,
    user_id: uuid.UUID,
    password_data: PasswordChange,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Change password after verifying the current one"""
    user = directory.get_user(session, user_id)
    ensure_self_or_admin(actor, user.id)
    
    directory.change_password(session, user, password_data.current_password, password_data.new_password)
    
    audit.log_event(
        "password_changed",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"targetUserId": user.id},
        request=request,
    )
    return success(message="Password changed successfully")


@router.get("/{user_id}/organizations")
def get_user_organizations(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
):
    """Organizations the user belongs to, with the user's role in each"""
    user = directory.get_user(session, user_id)
    ensure_self_or_admin(actor, user.id)
    
    rows = directory.get_user_organizations(session, user.id)
    return success([
        {
            "organization": OrganizationResponse.model_validate(organization),
            "membership": MembershipResponse.model_validate(membership),
        }
        for organization, membership in rows
    ])


@router.post("/{user_id}/organizations", status_code=status.HTTP_201_CREATED)
def add_user_to_organization(
    request: Request,
    user_id: uuid.UUID,
    membership_data: UserOrganizationAdd,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Add the user to an organization"""
    user = directory.get_user(session, user_id)
    organization = directory.get_organization(session, membership_data.organization_id)
    ensure_organization_admin(session, organization.id, actor)
    
    membership = directory.add_user_to_organization(session, organization, user, membership_data.role)
    
    audit.log_event(
        "organization_member_added",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "memberId": user.id, "role": membership.role.value},
        request=request,
    )
    return success(MembershipResponse.model_validate(membership), message="User added to organization")


@router.delete("/{user_id}/organizations/{organization_id}")
def remove_user_from_organization(
    request: Request,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    session: Session = Depends(get_session),
    actor: User = Depends(get_current_user),
    tenant: Optional[TenantContext] = Depends(get_tenant_context),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Remove the user from an organization"""
    user = directory.get_user(session, user_id)
    organization = directory.get_organization(session, organization_id)
    ensure_organization_admin(session, organization.id, actor)
    
    directory.remove_user_from_organization(session, organization.id, user.id)
    
    audit.log_event(
        "organization_member_removed",
        tenant_id=_tenant_id(tenant),
        user_id=actor.id,
        details={"organizationId": organization.id, "memberId": user.id},
        request=request,
    )
    return success(message="User removed from organization")
