from .event import (
    EventCreate,
    EventRead,
    EventUpdate,
    MembershipRead,
    ProjectionMessage,
)
from .quote import Quote, QuoteRead
from .user import UserRead, UserStatsRead

__all__ = [
    "EventCreate",
    "EventRead",
    "EventUpdate",
    "MembershipRead",
    "ProjectionMessage",
    "Quote",
    "QuoteRead",
    "UserRead",
    "UserStatsRead",
]
