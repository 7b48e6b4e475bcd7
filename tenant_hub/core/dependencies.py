"""
Authentication and request-context dependencies for FastAPI
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session
from typing import Optional
import structlog

from tenant_hub.core.auth import verify_token
from tenant_hub.core.database import get_session
from tenant_hub.core.exceptions import AuthenticationError
from tenant_hub.core.tenant_middleware import TenantContext
from tenant_hub.models.user import User, UserStatus

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session),
) -> Optional[User]:
    """Authenticated user, or None for anonymous requests; a bad token is rejected"""
    if credentials is None:
        return None
    
    user_id = verify_token(credentials.credentials)
    if user_id is None:
        raise AuthenticationError("Could not validate credentials")
    
    user = session.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise AuthenticationError("Could not validate credentials")
    
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


def get_current_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    """Require an authenticated user"""
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


def get_tenant_context(request: Request) -> Optional[TenantContext]:
    """Tenant resolved by TenantContextMiddleware, if the request named one"""
    return getattr(request.state, "tenant", None)
