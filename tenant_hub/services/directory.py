"""
Organization and user directory
Users, organizations and the memberships that link them
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import delete as sa_delete, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from tenant_hub.core.auth import (
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from tenant_hub.core.config import get_settings
from tenant_hub.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
)
from tenant_hub.models.invoice import Invoice
from tenant_hub.models.organization import MembershipRole, Organization, OrganizationMembership
from tenant_hub.models.password_reset import PasswordResetToken
from tenant_hub.models.plan import PlanName
from tenant_hub.models.subscription import Subscription
from tenant_hub.models.tenant import Tenant
from tenant_hub.models.usage import UsageRecord
from tenant_hub.models.user import User, UserRole, UserStatus, default_preferences
from tenant_hub.schemas.organization import OrganizationCreate, OrganizationUpdate
from tenant_hub.schemas.user import UserCreate, UserUpdate
from tenant_hub.services import plans, tenant_registry

logger = structlog.get_logger(__name__)
settings = get_settings()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# Users

def create_user(session: Session, data: UserCreate) -> User:
    """Create a user with a bcrypt-hashed password; email must be unique"""
    email = _normalize_email(data.email)
    if session.exec(select(User).where(User.email == email)).first():
        raise ConflictError("Email already registered")

    preferences = data.preferences.model_dump() if data.preferences else default_preferences()
    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        status=UserStatus.ACTIVE,
        email_verified=False,
        preferences=preferences,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Email already registered")

    session.refresh(user)
    logger.info("user_created", user_id=str(user.id))
    return user


def get_user(session: Session, user_id: uuid.UUID) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_user_by_email(session: Session, email: str) -> User:
    user = session.exec(select(User).where(User.email == _normalize_email(email))).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(session: Session, user: User, changes: UserUpdate) -> User:
    """Partial update; preferences are merged into the stored map"""
    data = {key: value for key, value in changes.model_dump(exclude_unset=True).items() if value is not None}
    if not data:
        return user

    if "email" in data:
        data["email"] = _normalize_email(data["email"])
        if data["email"] != user.email and session.exec(
            select(User).where(User.email == data["email"])
        ).first():
            raise ConflictError("Email already registered")

    if "preferences" in data:
        data["preferences"] = {**user.preferences, **data["preferences"]}

    for key, value in data.items():
        setattr(user, key, value)
    user.updated_at = datetime.utcnow()

    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Email already registered")

    session.refresh(user)
    logger.info("user_updated", user_id=str(user.id), fields=sorted(data))
    return user


def delete_user(session: Session, user: User) -> None:
    """
    Hard-delete a user with their memberships and reset tokens.

    Only admins may delete users; callers enforce this through the policy layer.
    """
    user_id = user.id
    session.exec(sa_delete(OrganizationMembership).where(OrganizationMembership.user_id == user_id))
    session.exec(sa_delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
    session.delete(user)
    session.commit()
    logger.info("user_deleted", user_id=str(user_id))


def change_password(session: Session, user: User, current_password: str, new_password: str) -> None:
    """Replace the password after verifying the current one"""
    if not verify_password(current_password, user.password_hash):
        logger.info("password_change_rejected", user_id=str(user.id))
        raise InvalidCredentialsError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    user.password_changed_at = datetime.utcnow()
    user.updated_at = user.password_changed_at
    session.add(user)
    session.commit()
    logger.info("password_changed", user_id=str(user.id))


def authenticate(session: Session, email: str, password: str) -> User:
    """Verify credentials, applying the failed-login lockout"""
    user = session.exec(select(User).where(User.email == _normalize_email(email))).first()
    if user is None:
        raise AuthenticationError("Invalid email or password")

    if user.is_locked():
        raise ForbiddenError("Account is temporarily locked due to failed login attempts")

    if not verify_password(password, user.password_hash):
        user.register_failed_login(settings.MAX_FAILED_LOGIN_ATTEMPTS, settings.ACCOUNT_LOCK_MINUTES)
        session.add(user)
        session.commit()
        logger.info("login_failed", user_id=str(user.id), locked=user.locked_until is not None)
        raise AuthenticationError("Invalid email or password")

    if user.status != UserStatus.ACTIVE:
        raise ForbiddenError("User account is inactive")

    user.register_successful_login()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("login_succeeded", user_id=str(user.id))
    return user


def request_password_reset(session: Session, email: str) -> Tuple[Optional[User], Optional[str]]:
    """
    Issue a single-use reset token for the account with this email.

    Returns (None, None) for unknown emails so callers can answer identically
    whether or not the account exists.
    """
    try:
        user = get_user_by_email(session, email)
    except NotFoundError:
        logger.info("password_reset_unknown_email")
        return None, None

    token = generate_reset_token()
    session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_reset_token(token),
        expires_at=datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
    ))
    session.commit()
    logger.info("password_reset_requested", user_id=str(user.id))
    return user, token


def set_password_with_token(session: Session, token: str, new_password: str) -> User:
    """Consume a reset token and set the new password"""
    now = datetime.utcnow()
    reset = session.exec(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_reset_token(token))
    ).first()
    if reset is None or not reset.is_usable(now):
        raise InvalidTokenError("Invalid or expired reset token")

    user = session.get(User, reset.user_id)
    if user is None:
        raise InvalidTokenError("Invalid or expired reset token")

    # Consuming one token invalidates every other outstanding token for the user
    outstanding = session.exec(
        select(PasswordResetToken).where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None),
        )
    ).all()
    for item in outstanding:
        item.used_at = now
        session.add(item)

    user.password_hash = hash_password(new_password)
    user.password_changed_at = now
    user.failed_login_attempts = 0
    user.locked_until = None
    user.updated_at = now
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("password_reset_completed", user_id=str(user.id))
    return user


def list_users(
    session: Session,
    status: Optional[UserStatus] = None,
    role: Optional[UserRole] = None,
    email_verified: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[User], int]:
    statement = select(User)
    if status is not None:
        statement = statement.where(User.status == status)
    if role is not None:
        statement = statement.where(User.role == role)
    if email_verified is not None:
        statement = statement.where(User.email_verified == email_verified)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    users = session.exec(
        statement.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(users), total


def user_stats(session: Session) -> dict:
    """Directory-wide head counts by status, verification and role"""
    def count(*conditions) -> int:
        return session.exec(select(func.count()).select_from(User).where(*conditions)).one()

    return {
        "totalUsers": count(),
        "activeUsers": count(User.status == UserStatus.ACTIVE),
        "inactiveUsers": count(User.status != UserStatus.ACTIVE),
        "verifiedUsers": count(User.email_verified.is_(True)),
        "adminUsers": count(User.role == UserRole.ADMIN),
    }


# Organizations

def create_organization(session: Session, data: OrganizationCreate, creator: User) -> Organization:
    """Create an organization; the creator becomes its first admin"""
    organization = Organization(**data.model_dump(), created_by=creator.id)
    session.add(organization)
    session.flush()
    session.add(OrganizationMembership(
        organization_id=organization.id,
        user_id=creator.id,
        role=MembershipRole.ADMIN,
    ))
    session.commit()
    session.refresh(organization)
    logger.info("organization_created", organization_id=str(organization.id), user_id=str(creator.id))
    return organization


def get_organization(session: Session, organization_id: uuid.UUID) -> Organization:
    organization = session.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    return organization


def update_organization(session: Session, organization: Organization, changes: OrganizationUpdate) -> Organization:
    data = {key: value for key, value in changes.model_dump(exclude_unset=True).items() if value is not None}
    for key, value in data.items():
        setattr(organization, key, value)
    organization.updated_at = datetime.utcnow()

    session.add(organization)
    session.commit()
    session.refresh(organization)
    logger.info("organization_updated", organization_id=str(organization.id), fields=sorted(data))
    return organization


def delete_organization(session: Session, organization: Organization) -> None:
    """Delete an organization that owns no tenants and has no billing history"""
    organization_id = organization.id
    owns_tenants = session.exec(select(Tenant.id).where(Tenant.organization_id == organization_id)).first()
    if owns_tenants is not None:
        raise ConflictError("Organization still owns tenants")

    has_billing = session.exec(
        select(Subscription.id).where(Subscription.organization_id == organization_id)
    ).first()
    if has_billing is not None:
        raise ConflictError("Organization has billing history")

    session.exec(sa_delete(OrganizationMembership).where(OrganizationMembership.organization_id == organization_id))
    session.exec(sa_delete(UsageRecord).where(UsageRecord.organization_id == organization_id))
    session.delete(organization)
    session.commit()
    logger.info("organization_deleted", organization_id=str(organization_id))


def list_organizations(
    session: Session,
    user: User,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Organization], int]:
    """Admins see every organization, everyone else only their own"""
    statement = select(Organization)
    if not user.is_admin:
        statement = statement.join(
            OrganizationMembership, OrganizationMembership.organization_id == Organization.id
        ).where(OrganizationMembership.user_id == user.id)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    items = session.exec(
        statement.order_by(Organization.created_at.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return list(items), total


# Memberships

def get_membership(
    session: Session, organization_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[OrganizationMembership]:
    return session.exec(
        select(OrganizationMembership).where(
            OrganizationMembership.organization_id == organization_id,
            OrganizationMembership.user_id == user_id,
        )
    ).first()


def count_members(session: Session, organization_id: uuid.UUID) -> int:
    return session.exec(
        select(func.count()).select_from(OrganizationMembership).where(
            OrganizationMembership.organization_id == organization_id
        )
    ).one()


def organization_plan(session: Session, organization_id: uuid.UUID) -> PlanName:
    """Plan of the current subscription, basic when there is none"""
    subscription = session.exec(
        select(Subscription).where(Subscription.current_for_organization_id == organization_id)
    ).first()
    return subscription.plan if subscription else PlanName.BASIC


def add_user_to_organization(
    session: Session,
    organization: Organization,
    user: User,
    role: MembershipRole = MembershipRole.MEMBER,
) -> OrganizationMembership:
    """Add a member, enforcing the plan's user limit"""
    if get_membership(session, organization.id, user.id) is not None:
        raise ConflictError("User is already a member of this organization")

    max_users = plans.get_plan(organization_plan(session, organization.id)).limit("maxUsers")
    if not plans.is_within_limit(max_users, count_members(session, organization.id) + 1):
        raise ConflictError(f"Organization has reached its plan limit of {max_users} users")

    membership = OrganizationMembership(organization_id=organization.id, user_id=user.id, role=role)
    session.add(membership)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("User is already a member of this organization")

    session.refresh(membership)
    logger.info(
        "organization_member_added",
        organization_id=str(organization.id),
        user_id=str(user.id),
        role=role.value,
    )
    return membership


def remove_user_from_organization(session: Session, organization_id: uuid.UUID, user_id: uuid.UUID) -> None:
    membership = get_membership(session, organization_id, user_id)
    if membership is None:
        raise NotFoundError("User is not a member of this organization")

    session.delete(membership)
    session.commit()
    logger.info("organization_member_removed", organization_id=str(organization_id), user_id=str(user_id))


def get_user_organizations(session: Session, user_id: uuid.UUID) -> List[Tuple[Organization, OrganizationMembership]]:
    rows = session.exec(
        select(Organization, OrganizationMembership)
        .join(OrganizationMembership, OrganizationMembership.organization_id == Organization.id)
        .where(OrganizationMembership.user_id == user_id)
        .order_by(OrganizationMembership.joined_at)
    ).all()
    return list(rows)


def list_members(session: Session, organization_id: uuid.UUID) -> List[Tuple[User, OrganizationMembership]]:
    rows = session.exec(
        select(User, OrganizationMembership)
        .join(OrganizationMembership, OrganizationMembership.user_id == User.id)
        .where(OrganizationMembership.organization_id == organization_id)
        .order_by(OrganizationMembership.joined_at)
    ).all()
    return list(rows)


def organization_stats(session: Session, organization: Organization) -> dict:
    members = count_members(session, organization.id)
    plan = organization_plan(session, organization.id)
    max_users = plans.get_plan(plan).limit("maxUsers")
    tenants = tenant_registry.count_tenants(session, organization.id)
    invoices = session.exec(
        select(func.count()).select_from(Invoice).where(Invoice.organization_id == organization.id)
    ).one()
    return {
        "organizationId": organization.id,
        "plan": plan.value,
        "memberCount": members,
        "maxUsers": max_users,
        "userUtilization": None if max_users == plans.UNLIMITED else round(members / max_users * 100, 1),
        "tenantCount": tenants,
        "invoiceCount": invoices,
    }
