"""Domain error codes for event and membership operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_EVENT_ID = "INVALID_EVENT_ID"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    NOT_REGISTERED = "NOT_REGISTERED"
    EVENT_FULL = "EVENT_FULL"
    FORBIDDEN = "FORBIDDEN"
    LOAD_FAILED = "LOAD_FAILED"
    CREATE_FAILED = "CREATE_FAILED"
    UPDATE_FAILED = "UPDATE_FAILED"
    DELETE_FAILED = "DELETE_FAILED"
    JOIN_FAILED = "JOIN_FAILED"
    LEAVE_FAILED = "LEAVE_FAILED"
    CAPACITY_BELOW_PARTICIPANTS = "CAPACITY_BELOW_PARTICIPANTS"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidEventIdError(DomainError):
    """Raised when an operation needs a persisted event but got none."""

    def __init__(self) -> None:
        super().__init__(code=ErrorCode.INVALID_EVENT_ID, message="Invalid event ID")


class EventNotFoundError(DomainError):
    """Raised when an event does not exist."""

    def __init__(self, event_id: str) -> None:
        super().__init__(code=ErrorCode.EVENT_NOT_FOUND, message="Event not found")
        object.__setattr__(self, "event_id", event_id)


class AlreadyRegisteredError(DomainError):
    """Raised when a user joins an event they already participate in."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_REGISTERED,
            message="You are already registered for this event",
        )


class NotRegisteredError(DomainError):
    """Raised when a user leaves an event they do not participate in."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.NOT_REGISTERED,
            message="You are not registered for this event",
        )


class EventFullError(DomainError):
    """Raised when an event has reached its participant cap."""

    def __init__(self) -> None:
        super().__init__(code=ErrorCode.EVENT_FULL, message="This event is full")


class CapacityBelowParticipantsError(DomainError):
    """Raised when a new cap would leave registered participants over it."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.CAPACITY_BELOW_PARTICIPANTS,
            message="Capacity cannot be lower than the number of registered participants",
        )


class ForbiddenError(DomainError):
    def __init__(self, message: str = "Only the organizer can modify this event") -> None:
        super().__init__(code=ErrorCode.FORBIDDEN, message=message)


def operation_failed(code: ErrorCode, message: str) -> DomainError:
    """Build a transport-level failure for a given operation."""
    return DomainError(code=code, message=message)
