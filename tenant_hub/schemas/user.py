"""
Pydantic schemas for users
"""

from pydantic import Field, EmailStr
from typing import Optional, Literal
from datetime import datetime
import uuid

from tenant_hub.models.user import UserRole, UserStatus
from tenant_hub.schemas.base import APIModel


class NotificationPreferences(APIModel):
    email: bool = True
    push: bool = True
    sms: bool = False


class UserPreferences(APIModel):
    timezone: str = Field(default="UTC", max_length=64)
    language: str = Field(default="en", min_length=2, max_length=10)
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    theme: Literal["light", "dark"] = "light"


class UserCreate(APIModel):
    """User registration schema"""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    role: UserRole = UserRole.USER
    preferences: Optional[UserPreferences] = None


class UserUpdate(APIModel):
    """Partial user update; role and status changes require an admin"""
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    email_verified: Optional[bool] = None
    preferences: Optional[UserPreferences] = None


class UserLogin(APIModel):
    """User login schema"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class PasswordChange(APIModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class PasswordResetRequest(APIModel):
    email: EmailStr


class PasswordSet(APIModel):
    token: str = Field(..., min_length=1, max_length=256)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserResponse(APIModel):
    """User response model (never carries the password hash)"""
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    status: UserStatus
    email_verified: bool
    preferences: dict
    created_at: datetime
    updated_at: Optional[datetime]
    last_login_at: Optional[datetime]
