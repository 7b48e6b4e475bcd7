"""
Per-IP rate limiting with slowapi
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from tenant_hub.core.config import get_settings

settings = get_settings()

# Fixed window per client address, applied to every route by SlowAPIMiddleware
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)
