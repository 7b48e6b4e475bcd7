"""
Single-use password reset tokens
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
import uuid


class PasswordResetToken(SQLModel, table=True):
    """Hashed reset token; the raw token is only ever handed to the user"""
    
    __tablename__ = "password_reset_tokens"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    token_hash: str = Field(unique=True, index=True, max_length=64)
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    
    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Token is neither used nor expired"""
        now = now or datetime.utcnow()
        return self.used_at is None and self.expires_at > now
