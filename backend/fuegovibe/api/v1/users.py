from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from fuegovibe.api.deps import CurrentUser, ProfileServiceDep, require_admin
from fuegovibe.models.user import AppUser
from fuegovibe.schemas import UserRead, UserStatsRead

router = APIRouter()


@router.get("/me", response_model=UserRead, summary="Get current user profile")
async def get_current_user_profile(current_user: CurrentUser) -> UserRead:
    """Profile of the signed-in user, provisioned on first access."""
    return UserRead.model_validate(current_user)


@router.get("/", response_model=List[UserRead], summary="List users")
async def list_users(
    profiles: ProfileServiceDep,
    admin: AppUser = Depends(require_admin),
) -> List[UserRead]:
    users = await profiles.list_profiles()
    return [UserRead.model_validate(user) for user in users]


@router.get("/stats", response_model=UserStatsRead, summary="User statistics for the admin dashboard")
async def read_user_stats(
    profiles: ProfileServiceDep,
    admin: AppUser = Depends(require_admin),
) -> UserStatsRead:
    return UserStatsRead.model_validate(await profiles.stats())
