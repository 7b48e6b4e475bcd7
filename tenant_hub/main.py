"""
Tenant Hub - Main Application Entry Point
Multi-tenant API layer: tenants, organizations, users and billing
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi.middleware import SlowAPIMiddleware
import structlog

from tenant_hub.core.config import get_settings
from tenant_hub.core.exceptions import configure_exception_handlers
from tenant_hub.core.logging_config import configure_logging
from tenant_hub.core.rate_limit import limiter
from tenant_hub.core.request_logging import RequestLoggingMiddleware
from tenant_hub.core.tenant_middleware import TenantContextMiddleware
from tenant_hub.api import billing, organizations, tenants, users

configure_logging()

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Initializing Tenant Hub API", environment=settings.ENVIRONMENT)
    # Tables are created by Alembic migrations, not auto-generated
    logger.info("Database managed by Alembic migrations")

    yield

    # Shutdown
    logger.info("Shutting down Tenant Hub API")


# Create FastAPI application
app = FastAPI(
    title="Tenant Hub API",
    description="Multi-tenant API layer with tenant isolation, organizations, users and subscription billing",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
configure_exception_handlers(app)

# Configure middleware stack (last added runs first):
# CORS -> request logging -> rate limit -> tenant resolution -> routes
app.add_middleware(TenantContextMiddleware)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id"],
)

# Include routers
app.include_router(tenants.router, prefix="/api/tenants", tags=["tenants"])
app.include_router(organizations.router, prefix="/api/organizations", tags=["organizations"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(billing.router, prefix="/api/billing", tags=["billing"])


@app.get("/health")
@limiter.exempt
def health_check(request: Request):
    """Health check endpoint"""
    return {"status": "healthy", "service": "tenant-hub-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tenant_hub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
