from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from fuegovibe.core.cache import get_cache
from fuegovibe.core.security import verify_token
from fuegovibe.models.user import AppUser
from fuegovibe.services.event_sync import EventSyncService
from fuegovibe.services.profiles import ProfileService
from fuegovibe.services.quotes import QuoteService
from fuegovibe.store.interfaces import DocumentStore

# Tokens are minted by the identity provider; there is no local login route
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


StoreDep = Annotated[DocumentStore, Depends(get_store)]


def get_event_service(store: StoreDep) -> EventSyncService:
    return EventSyncService(store)


def get_profile_service(store: StoreDep) -> ProfileService:
    return ProfileService(store)


def get_quote_service() -> QuoteService:
    return QuoteService(get_cache())


EventServiceDep = Annotated[EventSyncService, Depends(get_event_service)]
ProfileServiceDep = Annotated[ProfileService, Depends(get_profile_service)]


async def get_current_user(
    profiles: ProfileServiceDep,
    token: str = Depends(oauth2_scheme),
) -> AppUser:
    try:
        payload = verify_token(token, token_type="access")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await profiles.get_or_create_profile(user_id, email)


CurrentUser = Annotated[AppUser, Depends(get_current_user)]


def require_admin(current_user: CurrentUser) -> AppUser:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return current_user
