from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from fuegovibe.models.event import utcnow


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AppUser(BaseModel):
    """Profile record kept alongside the identity provider account."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: UserRole = UserRole.USER
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
