"""Conversion between Event and the flat document stored in the events collection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from fuegovibe.models.event import Event, EventCategory, EventStatus
from fuegovibe.store.query import DocumentSnapshot

logger = logging.getLogger(__name__)

# Optional document fields and the Event attribute each one maps to
OPTIONAL_FIELDS = {
    "address": "address",
    "latitude": "latitude",
    "longitude": "longitude",
    "maxParticipants": "max_participants",
    "imageURL": "image_url",
    "price": "price",
}


@dataclass(frozen=True)
class DecodeFailure:
    """A document that could not be turned into an Event."""

    document_id: str
    field: str
    reason: str


class _Missing(Exception):
    def __init__(self, field: str, reason: str) -> None:
        super().__init__(reason)
        self.field = field
        self.reason = reason


def encode(event: Event) -> dict:
    """Flatten an event into document fields; absent optionals are omitted."""
    document: dict = {
        "title": event.title,
        "description": event.description,
        "category": event.category.value,
        "status": event.status.value,
        "startDate": event.start_date,
        "endDate": event.end_date,
        "location": event.location,
        "organizerId": event.organizer_id,
        "organizerEmail": event.organizer_email,
        "currentParticipants": event.current_participants,
        "participantIds": list(event.participant_ids),
        "createdAt": event.created_at,
        "updatedAt": event.updated_at,
        "isFree": event.is_free,
        "currency": event.currency,
        "isPublic": event.is_public,
    }
    for key, attribute in OPTIONAL_FIELDS.items():
        value = getattr(event, attribute)
        if value is not None:
            document[key] = value
    return document


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_float(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_timestamp(value: Any) -> bool:
    return isinstance(value, datetime)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _required(document: Mapping[str, Any], key: str, check: Callable[[Any], bool]) -> Any:
    if key not in document or document[key] is None:
        raise _Missing(key, "missing")
    value = document[key]
    if not check(value):
        raise _Missing(key, f"unexpected type {type(value).__name__}")
    return value


def _optional(document: Mapping[str, Any], key: str, check: Callable[[Any], bool]) -> Any:
    value = document.get(key)
    if value is None or not check(value):
        return None
    return value


def _enum(document: Mapping[str, Any], key: str, enum_type: type) -> Any:
    raw = _required(document, key, _is_str)
    try:
        return enum_type(raw)
    except ValueError:
        raise _Missing(key, f"unknown value {raw!r}") from None


def decode(document: Mapping[str, Any], doc_id: str) -> Union[Event, DecodeFailure]:
    """Rebuild an Event from a stored document.

    Returns a DecodeFailure instead of raising when a required field is
    missing, mistyped or out of range. Mistyped optional fields read as absent.
    """
    try:
        fields = {
            "id": doc_id,
            "title": _required(document, "title", _is_str),
            "description": _required(document, "description", _is_str),
            "category": _enum(document, "category", EventCategory),
            "status": _enum(document, "status", EventStatus),
            "start_date": _required(document, "startDate", _is_timestamp),
            "end_date": _required(document, "endDate", _is_timestamp),
            "location": _required(document, "location", _is_str),
            "organizer_id": _required(document, "organizerId", _is_str),
            "organizer_email": _required(document, "organizerEmail", _is_str),
            "current_participants": _required(document, "currentParticipants", _is_int),
            "participant_ids": _required(document, "participantIds", _is_str_list),
            "created_at": _required(document, "createdAt", _is_timestamp),
            "updated_at": _required(document, "updatedAt", _is_timestamp),
            "is_free": _required(document, "isFree", _is_bool),
            "currency": _required(document, "currency", _is_str),
            "is_public": _required(document, "isPublic", _is_bool),
            "address": _optional(document, "address", _is_str),
            "latitude": _optional(document, "latitude", _is_float),
            "longitude": _optional(document, "longitude", _is_float),
            "max_participants": _optional(document, "maxParticipants", _is_int),
            "image_url": _optional(document, "imageURL", _is_str),
            "price": _optional(document, "price", _is_float),
        }
    except _Missing as exc:
        return DecodeFailure(document_id=doc_id, field=exc.field, reason=exc.reason)

    try:
        return Event(**fields)
    except ValidationError as exc:
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error.get("loc", ())) or "document"
        return DecodeFailure(document_id=doc_id, field=location, reason=error["msg"])


def decode_many(documents: Iterable[DocumentSnapshot]) -> List[Event]:
    """Decode a batch, skipping and logging malformed documents."""
    events: List[Event] = []
    for document in documents:
        result = decode(document.data, document.id)
        if isinstance(result, DecodeFailure):
            logger.warning(
                f"Skipping document {result.document_id}: {result.field} {result.reason}"
            )
            continue
        events.append(result)
    return events


def decode_one(document: Optional[DocumentSnapshot]) -> Optional[Event]:
    if document is None:
        return None
    result = decode(document.data, document.id)
    if isinstance(result, DecodeFailure):
        logger.warning(f"Document {result.document_id} is malformed: {result.field} {result.reason}")
        return None
    return result
