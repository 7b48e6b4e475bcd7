"""
User model with global roles, login lockout and preferences
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime, timedelta
from typing import Optional
from enum import Enum
import uuid


class UserRole(str, Enum):
    """Global user roles for RBAC"""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class UserStatus(str, Enum):
    """Account status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


def default_preferences() -> dict:
    """Preferences assigned to newly created users"""
    return {
        "timezone": "UTC",
        "language": "en",
        "notifications": {"email": True, "push": True, "sms": False},
        "theme": "light",
    }


class User(SQLModel, table=True):
    """User account; organization membership lives in OrganizationMembership"""
    
    __tablename__ = "users"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    
    # Authentication
    email: str = Field(unique=True, index=True, nullable=False, max_length=255)
    password_hash: str = Field(nullable=False)
    
    # Profile
    first_name: str = Field(nullable=False, max_length=50)
    last_name: str = Field(nullable=False, max_length=50)
    preferences: dict = Field(default_factory=default_preferences, sa_column=Column(JSON, nullable=False))
    
    # RBAC
    role: UserRole = Field(default=UserRole.USER, nullable=False, index=True)
    
    # Status
    status: UserStatus = Field(default=UserStatus.ACTIVE, index=True)
    email_verified: bool = Field(default=False)
    
    # Login protection
    failed_login_attempts: int = Field(default=0)
    locked_until: Optional[datetime] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    
    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
    
    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """Check if the account is inside a lockout window"""
        now = now or datetime.utcnow()
        return self.locked_until is not None and self.locked_until > now
    
    def register_failed_login(self, max_attempts: int, lock_minutes: int) -> None:
        """Count a failed login, locking the account once the limit is reached"""
        self.failed_login_attempts += 1
        if self.failed_login_attempts >= max_attempts:
            self.locked_until = datetime.utcnow() + timedelta(minutes=lock_minutes)
            self.failed_login_attempts = 0
    
    def register_successful_login(self) -> None:
        self.failed_login_attempts = 0
        self.locked_until = None
        self.last_login_at = datetime.utcnow()
