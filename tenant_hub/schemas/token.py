"""
Pydantic schemas for authentication and tokens
"""

from tenant_hub.schemas.base import APIModel
from tenant_hub.schemas.user import UserResponse


class TokenResponse(APIModel):
    """Token response"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
