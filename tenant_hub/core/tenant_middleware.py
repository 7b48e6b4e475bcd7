"""
Tenant context middleware for multi-tenant isolation
"""

from dataclasses import dataclass
from typing import Callable, Optional
import uuid

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from tenant_hub.core import database
from tenant_hub.core.config import get_settings
from tenant_hub.core.exceptions import NotFoundError, error_body
from tenant_hub.services.tenant_registry import resolve_tenant

logger = structlog.get_logger(__name__)
settings = get_settings()

UNSCOPED_PATHS = {"/health"}


@dataclass(frozen=True)
class TenantContext:
    """Tenant resolved for the current request"""
    tenant_id: uuid.UUID
    organization_id: uuid.UUID
    domain: str
    plan: str
    status: str


def _resolve(identifier: str) -> TenantContext:
    with Session(database.engine) as session:
        tenant = resolve_tenant(session, identifier)
        return TenantContext(
            tenant_id=tenant.id,
            organization_id=tenant.organization_id,
            domain=tenant.domain,
            plan=tenant.plan.value,
            status=tenant.status.value,
        )


def tenant_identifier(request: Request) -> Optional[str]:
    """Tenant identifier from the tenant header, falling back to the query parameter"""
    identifier = request.headers.get(settings.TENANT_HEADER) or request.query_params.get(settings.TENANT_QUERY_PARAM)
    if identifier is None:
        return None
    return identifier.strip() or None


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Resolve the request's tenant before any route handler runs"""
    
    async def dispatch(self, request: Request, call_next: Callable):
        request.state.tenant = None
        if request.url.path in UNSCOPED_PATHS:
            return await call_next(request)
        
        identifier = tenant_identifier(request)
        
        if identifier is not None:
            try:
                context = await run_in_threadpool(_resolve, identifier)
            except NotFoundError:
                logger.info("tenant_not_found", identifier=identifier, path=request.url.path)
                return JSONResponse(
                    status_code=status.HTTP_404_NOT_FOUND,
                    content=error_body("Tenant not found"),
                )
            
            request.state.tenant = context
            structlog.contextvars.bind_contextvars(tenant_id=str(context.tenant_id))
            logger.debug("tenant_context_resolved", tenant_id=str(context.tenant_id), status=context.status)
        
        return await call_next(request)
