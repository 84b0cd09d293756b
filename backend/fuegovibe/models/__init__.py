from .document import StoredDocument
from .event import Event, EventCategory, EventStatus
from .user import AppUser, UserRole

__all__ = [
    "AppUser",
    "Event",
    "EventCategory",
    "EventStatus",
    "StoredDocument",
    "UserRole",
]
