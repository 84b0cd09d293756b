from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict

from fuegovibe.models.user import UserRole


class UserRead(BaseModel):
    id: str
    email: str
    role: UserRole
    is_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserStatsRead(BaseModel):
    total_users: int
    total_admins: int
    users: List[UserRead]

    model_config = ConfigDict(from_attributes=True)
