"""Join / leave guards evaluated against an event snapshot. No I/O."""

from __future__ import annotations

from typing import Optional

from fuegovibe.core.errors import (
    AlreadyRegisteredError,
    CapacityBelowParticipantsError,
    DomainError,
    EventFullError,
    NotRegisteredError,
)
from fuegovibe.models.event import Event


def check_join(event: Event, user_id: str) -> Optional[DomainError]:
    if event.is_user_participating(user_id):
        return AlreadyRegisteredError()
    if event.is_full:
        return EventFullError()
    return None


def check_leave(event: Event, user_id: str) -> Optional[DomainError]:
    if not event.is_user_participating(user_id):
        return NotRegisteredError()
    return None


def can_join(event: Event, user_id: str) -> bool:
    return check_join(event, user_id) is None


def can_leave(event: Event, user_id: str) -> bool:
    return check_leave(event, user_id) is None


def check_capacity(max_participants: Optional[int], participants: int) -> Optional[DomainError]:
    """A cap may be lowered, but never below the participants already registered."""
    if max_participants is not None and max_participants < participants:
        return CapacityBelowParticipantsError()
    return None
