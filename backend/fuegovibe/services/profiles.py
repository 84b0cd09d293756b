"""User profiles stored next to the identity provider accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from fuegovibe.core.config import settings
from fuegovibe.models.event import utcnow
from fuegovibe.models.user import AppUser, UserRole
from fuegovibe.store.interfaces import DocumentStore
from fuegovibe.store.query import DocumentSnapshot, Query

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStats:
    total_users: int
    total_admins: int
    users: List[AppUser]


def _profile_from_document(document: DocumentSnapshot) -> Optional[AppUser]:
    data = document.data
    email = data.get("email")
    if not isinstance(email, str):
        return None
    try:
        role = UserRole(data.get("role", UserRole.USER.value))
    except ValueError:
        role = UserRole.USER
    created_at = data.get("createdAt")
    if not isinstance(created_at, datetime):
        created_at = utcnow()
    return AppUser(id=data.get("uid", document.id), email=email, role=role, created_at=created_at)


class ProfileService:
    """Looks up and provisions AppUser records in the users collection."""

    def __init__(
        self,
        store: DocumentStore,
        admin_emails: Optional[Iterable[str]] = None,
        collection: Optional[str] = None,
    ) -> None:
        self._store = store
        self._collection = collection or settings.USERS_COLLECTION
        emails = settings.ADMIN_EMAILS if admin_emails is None else admin_emails
        self._admin_emails = {email.strip().lower() for email in emails}

    def role_for(self, email: str) -> UserRole:
        if email.strip().lower() in self._admin_emails:
            return UserRole.ADMIN
        return UserRole.USER

    async def get_profile(self, user_id: str) -> Optional[AppUser]:
        document = await self._store.get_document(self._collection, user_id)
        if document is None:
            return None
        return _profile_from_document(document)

    async def get_or_create_profile(self, user_id: str, email: str) -> AppUser:
        """Return the stored profile, provisioning one on first sign-in."""
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile

        user = AppUser(id=user_id, email=email, role=self.role_for(email), created_at=utcnow())
        await self._store.set_document(
            self._collection,
            user_id,
            {
                "uid": user.id,
                "email": user.email,
                "role": user.role.value,
                "createdAt": user.created_at,
            },
        )
        logger.info(f"User {user_id} created with role: {user.role.value}")
        return user

    async def list_profiles(self) -> List[AppUser]:
        snapshot = await self._store.get_documents(Query(self._collection))
        profiles = [_profile_from_document(document) for document in snapshot]
        return sorted(
            (profile for profile in profiles if profile is not None),
            key=lambda profile: profile.created_at,
            reverse=True,
        )

    async def stats(self) -> UserStats:
        users = await self.list_profiles()
        return UserStats(
            total_users=len(users),
            total_admins=sum(1 for user in users if user.is_admin),
            users=users,
        )
