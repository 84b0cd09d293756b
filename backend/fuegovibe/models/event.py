from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventCategory(str, Enum):
    MUSIC = "Music"
    SPORTS = "Sports"
    ARTS = "Arts"
    FOOD = "Food & Drink"
    BUSINESS = "Business"
    TECHNOLOGY = "Technology"
    OTHER = "Other"


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Event(BaseModel):
    """A schedulable happening stored in the events collection."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: str
    description: str
    category: EventCategory
    status: EventStatus = EventStatus.UPCOMING

    start_date: datetime
    end_date: datetime

    location: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    organizer_id: str
    organizer_email: str

    max_participants: Optional[int] = Field(default=None, ge=0)
    current_participants: int = Field(default=0, ge=0)
    participant_ids: List[str] = Field(default_factory=list)

    image_url: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    is_free: bool = True
    price: Optional[float] = None
    currency: str = "USD"

    is_public: bool = True

    @model_validator(mode="before")
    @classmethod
    def stamp_creation_time(cls, data: Any) -> Any:
        # A fresh event has created_at == updated_at
        if isinstance(data, dict) and (
            data.get("created_at") is None or data.get("updated_at") is None
        ):
            data = dict(data)
            now = utcnow()
            created_at = data.get("created_at") or now
            data["created_at"] = created_at
            data["updated_at"] = data.get("updated_at") or created_at
        return data

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("participant_ids")
    @classmethod
    def check_unique_participants(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("participant_ids must not contain duplicates")
        return value

    @model_validator(mode="after")
    def check_ends_after_start(self) -> "Event":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self

    @model_validator(mode="after")
    def check_participant_count(self) -> "Event":
        if self.current_participants != len(self.participant_ids):
            raise ValueError("current_participants must equal the number of participant_ids")
        if self.max_participants is not None and self.current_participants > self.max_participants:
            raise ValueError("current_participants must not exceed max_participants")
        return self

    @classmethod
    def new(
        cls,
        *,
        title: str,
        description: str,
        category: EventCategory,
        start_date: datetime,
        end_date: datetime,
        location: str,
        organizer_id: str,
        organizer_email: str,
        max_participants: Optional[int] = None,
        is_free: bool = True,
        price: Optional[float] = None,
        is_public: bool = True,
        **extra: Any,
    ) -> "Event":
        """Build an unsaved event in its initial lifecycle state."""
        now = utcnow()
        return cls(
            title=title,
            description=description,
            category=category,
            status=EventStatus.UPCOMING,
            start_date=start_date,
            end_date=end_date,
            location=location,
            organizer_id=organizer_id,
            organizer_email=organizer_email,
            max_participants=max_participants,
            current_participants=0,
            participant_ids=[],
            created_at=now,
            updated_at=now,
            is_free=is_free,
            price=price,
            is_public=is_public,
            **extra,
        )

    @property
    def is_full(self) -> bool:
        if self.max_participants is None:
            return False
        return self.current_participants >= self.max_participants

    @property
    def spots_left(self) -> Optional[int]:
        if self.max_participants is None:
            return None
        return self.max_participants - self.current_participants

    @property
    def is_past(self) -> bool:
        return self.end_date < utcnow()

    @property
    def is_ongoing(self) -> bool:
        now = utcnow()
        return self.start_date <= now <= self.end_date

    def is_user_participating(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def is_organizer(self, user_id: str) -> bool:
        return self.organizer_id == user_id
