from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from fuegovibe.models.event import Event, EventCategory, EventStatus


class EventBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)
    category: EventCategory = EventCategory.OTHER
    start_date: datetime
    end_date: datetime
    location: str = Field(min_length=1, max_length=255)
    address: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    max_participants: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = None
    is_free: bool = True
    price: Optional[float] = Field(default=None, ge=0)
    currency: str = "USD"
    is_public: bool = True

    @field_validator("end_date")
    @classmethod
    def check_ends_after_start(
        cls, end_date: datetime, info: ValidationInfo
    ) -> datetime:
        start_date: datetime | None = info.data.get("start_date")
        if start_date and end_date < start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return end_date


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    category: Optional[EventCategory] = None
    status: Optional[EventStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    address: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    max_participants: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = None
    is_free: Optional[bool] = None
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    is_public: Optional[bool] = None

    @field_validator("end_date")
    @classmethod
    def check_ends_after_start(
        cls, end_date: datetime | None, info: ValidationInfo
    ) -> datetime | None:
        start_date: datetime | None = info.data.get("start_date")
        if start_date and end_date and end_date < start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return end_date


class EventRead(BaseModel):
    id: str
    title: str
    description: str
    category: EventCategory
    status: EventStatus
    start_date: datetime
    end_date: datetime
    location: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    organizer_id: str
    organizer_email: str
    max_participants: Optional[int] = None
    current_participants: int
    participant_ids: List[str] = []
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    is_free: bool
    price: Optional[float] = None
    currency: str
    is_public: bool
    is_full: bool
    spots_left: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_event(cls, event: Event) -> "EventRead":
        return cls.model_validate(event)


class MembershipRead(BaseModel):
    event_id: str
    user_id: str
    action: Literal["joined", "left"]


class ProjectionMessage(BaseModel):
    """Payload pushed over the events WebSocket."""

    type: Literal["snapshot"] = "snapshot"
    projection: str
    events: List[EventRead]
