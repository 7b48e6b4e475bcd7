"""
Database configuration and session management
"""

from sqlmodel import Session, create_engine
from sqlalchemy.pool import StaticPool

from tenant_hub.core.config import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    """SQLite needs a shared connection across threads; everything else pools normally"""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {"pool_pre_ping": True}


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_kwargs(settings.DATABASE_URL),
)


def get_session():
    """Dependency to get database session"""
    with Session(engine) as session:
        yield session
