"""Event synchronization service.

Keeps three projections of the events collection current:

- ``all_public_events``: public events, soonest first
- ``my_events``: events organized by a user, newest first
- ``joined_events``: events a user participates in, soonest first

Each projection is refreshed by a one-shot fetch or kept live by a push
subscription whose snapshots fully replace it. Mutations go through the
store; join and leave are guarded locally and re-checked atomically against
the stored document so the participant count never exceeds the cap.

Failures never raise: they are recorded in ``last_error`` / ``error_message``
and the previous projection state is kept.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from fuegovibe.core.config import settings
from fuegovibe.core.errors import (
    DomainError,
    ErrorCode,
    EventNotFoundError,
    InvalidEventIdError,
    operation_failed,
)
from fuegovibe.models.event import Event, EventCategory, EventStatus, utcnow
from fuegovibe.services.codec import OPTIONAL_FIELDS, DecodeFailure, decode, decode_many, decode_one, encode
from fuegovibe.services.membership import check_capacity, check_join, check_leave
from fuegovibe.store.interfaces import DocumentNotFoundError, DocumentStore, Subscription
from fuegovibe.store.query import (
    DELETE_FIELD,
    ArrayRemove,
    ArrayUnion,
    Increment,
    Query,
    QuerySnapshot,
)

logger = logging.getLogger(__name__)

# Membership fields only change through join / leave
MEMBERSHIP_FIELDS = ("participantIds", "currentParticipants", "createdAt")


class Projection(str, Enum):
    ALL_PUBLIC = "all_public_events"
    MY_EVENTS = "my_events"
    JOINED = "joined_events"


ProjectionObserver = Callable[[Projection, Tuple[Event, ...]], None]


def _cancel_all(subscriptions: Dict[Projection, Subscription]) -> None:
    for subscription in list(subscriptions.values()):
        subscription.cancel()
    subscriptions.clear()


def _dispatch(
    service_ref: "weakref.ReferenceType[EventSyncService]",
    projection: Projection,
    token: object,
    snapshot: Optional[QuerySnapshot],
    error: Optional[Exception],
) -> None:
    service = service_ref()
    if service is None:
        return
    service._apply_snapshot(projection, token, snapshot, error)


class EventSyncService:
    """Live projections of the events collection plus guarded mutations."""

    def __init__(self, store: DocumentStore, collection: Optional[str] = None) -> None:
        self._store = store
        self._collection = collection or settings.EVENTS_COLLECTION
        self._projections: Dict[Projection, Tuple[Event, ...]] = {
            projection: () for projection in Projection
        }
        self._pending = 0
        self.last_error: Optional[DomainError] = None
        self._subscriptions: Dict[Projection, Subscription] = {}
        self._tokens: Dict[Projection, object] = {}
        self._observers: List[ProjectionObserver] = []
        # Cancels open subscriptions however the service goes away
        self._finalizer = weakref.finalize(self, _cancel_all, self._subscriptions)

    # State

    @property
    def all_public_events(self) -> Tuple[Event, ...]:
        return self._projections[Projection.ALL_PUBLIC]

    @property
    def my_events(self) -> Tuple[Event, ...]:
        return self._projections[Projection.MY_EVENTS]

    @property
    def joined_events(self) -> Tuple[Event, ...]:
        return self._projections[Projection.JOINED]

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error_message(self) -> str:
        return self.last_error.message if self.last_error else ""

    def projection(self, projection: Projection) -> Tuple[Event, ...]:
        return self._projections[projection]

    def is_listening(self, projection: Projection) -> bool:
        subscription = self._subscriptions.get(projection)
        return subscription is not None and subscription.active

    def add_observer(self, observer: ProjectionObserver) -> None:
        """Call ``observer`` with the new contents whenever a projection changes."""
        self._observers.append(observer)

    def remove_observer(self, observer: ProjectionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _replace(self, projection: Projection, events: List[Event] | Tuple[Event, ...]) -> None:
        self._projections[projection] = tuple(events)
        for observer in list(self._observers):
            try:
                observer(projection, self._projections[projection])
            except Exception:
                logger.error(f"Observer failed for {projection.value}", exc_info=True)

    def _begin(self) -> None:
        self._pending += 1
        self.last_error = None

    def _end(self) -> None:
        self._pending -= 1

    def _fail(self, error: DomainError) -> bool:
        self.last_error = error
        return False

    # Queries

    def public_events_query(self) -> Query:
        return Query(self._collection).where("isPublic", "==", True).order("startDate")

    def my_events_query(self, user_id: str) -> Query:
        return (
            Query(self._collection)
            .where("organizerId", "==", user_id)
            .order("createdAt", descending=True)
        )

    def joined_events_query(self, user_id: str) -> Query:
        return (
            Query(self._collection)
            .where("participantIds", "array_contains", user_id)
            .order("startDate")
        )

    # One-shot fetches

    async def _fetch(self, projection: Projection, query: Query, failure: str) -> None:
        self._begin()
        try:
            snapshot = await self._store.get_documents(query)
        except Exception as exc:
            logger.error(f"Error fetching {projection.value}: {exc}", exc_info=True)
            self.last_error = operation_failed(ErrorCode.LOAD_FAILED, failure)
            return
        finally:
            self._end()
        events = decode_many(snapshot)
        self._replace(projection, events)
        logger.info(f"Loaded {len(events)} events into {projection.value}")

    async def fetch_all_public_events(self) -> None:
        await self._fetch(Projection.ALL_PUBLIC, self.public_events_query(), "Failed to load events")

    async def fetch_my_events(self, user_id: str) -> None:
        await self._fetch(
            Projection.MY_EVENTS, self.my_events_query(user_id), "Failed to load your events"
        )

    async def fetch_joined_events(self, user_id: str) -> None:
        await self._fetch(
            Projection.JOINED, self.joined_events_query(user_id), "Failed to load joined events"
        )

    async def get_event(self, event_id: str) -> Optional[Event]:
        """Read the authoritative copy of one event."""
        self._begin()
        try:
            document = await self._store.get_document(self._collection, event_id)
        except Exception as exc:
            logger.error(f"Error loading event {event_id}: {exc}", exc_info=True)
            self.last_error = operation_failed(ErrorCode.LOAD_FAILED, "Failed to load event")
            return None
        finally:
            self._end()
        event = decode_one(document)
        if event is None:
            self.last_error = EventNotFoundError(event_id)
        return event

    # Mutations

    async def create_event(self, event: Event) -> Optional[Event]:
        """Persist a new event; returns it with its assigned id, or None on failure."""
        self._begin()
        try:
            event_id = await self._store.add_document(self._collection, encode(event))
        except Exception as exc:
            logger.error(f"Error creating event: {exc}", exc_info=True)
            self.last_error = operation_failed(ErrorCode.CREATE_FAILED, "Failed to create event")
            return None
        finally:
            self._end()
        logger.info(f"Event created with ID: {event_id}")
        await self.fetch_all_public_events()
        return event.model_copy(update={"id": event_id})

    async def update_event(self, event: Event) -> bool:
        """Write the editable fields of ``event``; membership stays as stored.

        The cap is checked against the stored participant count inside the
        transaction, so it can never drop below registrations made meanwhile.
        """
        if not event.id:
            return self._fail(InvalidEventIdError())

        updated = event.model_copy(update={"updated_at": utcnow()})
        changes = {
            key: value for key, value in encode(updated).items() if key not in MEMBERSHIP_FIELDS
        }
        for key in OPTIONAL_FIELDS:
            changes.setdefault(key, DELETE_FIELD)

        def guarded(current: dict) -> Mapping:
            stored = decode(current, event.id)
            if isinstance(stored, DecodeFailure):
                raise operation_failed(ErrorCode.UPDATE_FAILED, "Failed to update event")
            rejection = check_capacity(event.max_participants, stored.current_participants)
            if rejection is not None:
                raise rejection
            return changes

        self._begin()
        try:
            await self._store.transact(self._collection, event.id, guarded)
        except DomainError as exc:
            self.last_error = exc
            return False
        except DocumentNotFoundError:
            self.last_error = EventNotFoundError(event.id)
            return False
        except Exception as exc:
            logger.error(f"Error updating event {event.id}: {exc}", exc_info=True)
            self.last_error = operation_failed(ErrorCode.UPDATE_FAILED, "Failed to update event")
            return False
        finally:
            self._end()
        logger.info(f"Event {event.id} updated")
        await self.fetch_all_public_events()
        return True

    async def delete_event(self, event_id: str) -> bool:
        self._begin()
        try:
            await self._store.delete_document(self._collection, event_id)
        except Exception as exc:
            logger.error(f"Error deleting event {event_id}: {exc}", exc_info=True)
            self.last_error = operation_failed(ErrorCode.DELETE_FAILED, "Failed to delete event")
            return False
        finally:
            self._end()
        logger.info(f"Event {event_id} deleted")
        for projection in Projection:
            current = self._projections[projection]
            remaining = tuple(e for e in current if e.id != event_id)
            if len(remaining) != len(current):
                self._replace(projection, remaining)
        return True

    async def join_event(self, event: Event, user_id: str) -> bool:
        """Register ``user_id`` on ``event``.

        The guard runs first against the caller's snapshot, so an obviously
        invalid join never reaches the store. The store then re-runs it on
        the authoritative document inside a transaction. Projections are left
        to the subscriptions.
        """
        if not event.id:
            return self._fail(InvalidEventIdError())
        rejection = check_join(event, user_id)
        if rejection is not None:
            return self._fail(rejection)

        def guarded(current: dict) -> Mapping:
            authoritative = decode(current, event.id)
            if isinstance(authoritative, DecodeFailure):
                raise operation_failed(ErrorCode.JOIN_FAILED, "Failed to join event")
            remote_rejection = check_join(authoritative, user_id)
            if remote_rejection is not None:
                raise remote_rejection
            return {
                "participantIds": ArrayUnion((user_id,)),
                "currentParticipants": Increment(1),
                "updatedAt": utcnow(),
            }

        return await self._membership_change(
            event.id, guarded, ErrorCode.JOIN_FAILED, "Failed to join event", "Joined"
        )

    async def leave_event(self, event: Event, user_id: str) -> bool:
        if not event.id:
            return self._fail(InvalidEventIdError())
        rejection = check_leave(event, user_id)
        if rejection is not None:
            return self._fail(rejection)

        def guarded(current: dict) -> Mapping:
            authoritative = decode(current, event.id)
            if isinstance(authoritative, DecodeFailure):
                raise operation_failed(ErrorCode.LEAVE_FAILED, "Failed to leave event")
            remote_rejection = check_leave(authoritative, user_id)
            if remote_rejection is not None:
                raise remote_rejection
            return {
                "participantIds": ArrayRemove((user_id,)),
                "currentParticipants": Increment(-1),
                "updatedAt": utcnow(),
            }

        return await self._membership_change(
            event.id, guarded, ErrorCode.LEAVE_FAILED, "Failed to leave event", "Left"
        )

    async def _membership_change(
        self,
        event_id: str,
        guarded: Callable[[dict], Mapping],
        code: ErrorCode,
        failure: str,
        verb: str,
    ) -> bool:
        self._begin()
        try:
            await self._store.transact(self._collection, event_id, guarded)
        except DomainError as exc:
            self.last_error = exc
            return False
        except DocumentNotFoundError:
            self.last_error = EventNotFoundError(event_id)
            return False
        except Exception as exc:
            logger.error(f"Error updating membership of {event_id}: {exc}", exc_info=True)
            self.last_error = operation_failed(code, failure)
            return False
        finally:
            self._end()
        logger.info(f"{verb} event {event_id}")
        return True

    # Local views over all_public_events

    def search_events(self, query: str) -> Tuple[Event, ...]:
        events = self.all_public_events
        if not query:
            return events
        needle = query.casefold()
        return tuple(
            event
            for event in events
            if needle in event.title.casefold()
            or needle in event.description.casefold()
            or needle in event.location.casefold()
        )

    def filter_by_category(self, category: EventCategory) -> Tuple[Event, ...]:
        return tuple(e for e in self.all_public_events if e.category == category)

    def filter_by_status(self, status: EventStatus) -> Tuple[Event, ...]:
        return tuple(e for e in self.all_public_events if e.status == status)

    def free_events(self) -> Tuple[Event, ...]:
        return tuple(e for e in self.all_public_events if e.is_free)

    def paid_events(self) -> Tuple[Event, ...]:
        return tuple(e for e in self.all_public_events if not e.is_free)

    def upcoming_events(self) -> Tuple[Event, ...]:
        now = utcnow()
        return tuple(e for e in self.all_public_events if e.start_date > now)

    # Push subscriptions

    def start_listening(self) -> None:
        self._listen(Projection.ALL_PUBLIC, self.public_events_query())

    def stop_listening(self) -> None:
        self._stop(Projection.ALL_PUBLIC)

    def start_my_events_listener(self, user_id: str) -> None:
        self._listen(Projection.MY_EVENTS, self.my_events_query(user_id))

    def stop_my_events_listener(self) -> None:
        self._stop(Projection.MY_EVENTS)

    def start_joined_events_listener(self, user_id: str) -> None:
        self._listen(Projection.JOINED, self.joined_events_query(user_id))

    def stop_joined_events_listener(self) -> None:
        self._stop(Projection.JOINED)

    def _listen(self, projection: Projection, query: Query) -> None:
        self._stop(projection)
        loop = asyncio.get_running_loop()
        token = object()
        service_ref = weakref.ref(self)

        def handler(snapshot: Optional[QuerySnapshot], error: Optional[Exception]) -> None:
            try:
                loop.call_soon_threadsafe(
                    _dispatch, service_ref, projection, token, snapshot, error
                )
            except RuntimeError:
                logger.debug(f"Dropping {projection.value} snapshot, loop is closed")

        self._tokens[projection] = token
        self._subscriptions[projection] = self._store.subscribe(query, handler)
        logger.info(f"Listening for {projection.value}")

    def _stop(self, projection: Projection) -> None:
        self._tokens.pop(projection, None)
        subscription = self._subscriptions.pop(projection, None)
        if subscription is not None:
            subscription.cancel()
            logger.info(f"Stopped listening for {projection.value}")

    def _apply_snapshot(
        self,
        projection: Projection,
        token: object,
        snapshot: Optional[QuerySnapshot],
        error: Optional[Exception],
    ) -> None:
        if self._tokens.get(projection) is not token:
            # Cancelled or replaced after this snapshot was sent
            return
        if error is not None:
            logger.error(f"{projection.value} listener error: {error}")
            self.last_error = operation_failed(ErrorCode.LOAD_FAILED, "Failed to load events")
            return
        if snapshot is None:
            return
        events = decode_many(snapshot)
        self._replace(projection, events)
        logger.info(f"{projection.value} updated: {len(events)}")

    # Teardown

    def close(self) -> None:
        """Cancel every active subscription. Safe to call more than once."""
        self._tokens.clear()
        _cancel_all(self._subscriptions)

    async def __aenter__(self) -> "EventSyncService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
