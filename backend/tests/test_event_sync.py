"""Tests for EventSyncService projections, mutations and subscriptions."""
from __future__ import annotations

import asyncio
import gc
from datetime import timedelta

import pytest

from fuegovibe.core.errors import ErrorCode
from fuegovibe.models.event import EventCategory, EventStatus, utcnow
from fuegovibe.services.codec import encode
from fuegovibe.services.event_sync import EventSyncService, Projection
from fuegovibe.store.interfaces import StoreError
from fuegovibe.store.memory import MemoryDocumentStore

pytestmark = pytest.mark.anyio


class FlakyStore(MemoryDocumentStore):
    """Memory store whose named operations can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StoreError(f"{operation} unavailable")

    async def get_documents(self, query):
        self._check("get_documents")
        return await super().get_documents(query)

    async def add_document(self, collection, data):
        self._check("add_document")
        return await super().add_document(collection, data)

    async def update_document(self, collection, doc_id, changes):
        self._check("update_document")
        return await super().update_document(collection, doc_id, changes)

    async def delete_document(self, collection, doc_id):
        self._check("delete_document")
        return await super().delete_document(collection, doc_id)

    async def transact(self, collection, doc_id, fn):
        self._check("transact")
        return await super().transact(collection, doc_id, fn)


class SpyStore(MemoryDocumentStore):
    """Memory store that records transactions and subscription handlers."""

    def __init__(self) -> None:
        super().__init__()
        self.transactions = 0
        self.handlers = []

    async def transact(self, collection, doc_id, fn):
        self.transactions += 1
        return await super().transact(collection, doc_id, fn)

    def subscribe(self, query, handler):
        self.handlers.append(handler)
        return super().subscribe(query, handler)


@pytest.fixture
def flaky_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def spy_store() -> SpyStore:
    return SpyStore()


async def _seed(store, make_event, **overrides):
    event = make_event(**overrides)
    event_id = await store.add_document("events", encode(event))
    return event.model_copy(update={"id": event_id})


# One-shot fetches


async def test_fetch_all_public_events_orders_by_start_date(service, seed_event):
    now = utcnow()
    later = await seed_event(title="Later", start_date=now + timedelta(days=9))
    sooner = await seed_event(title="Sooner", start_date=now + timedelta(days=2))
    await seed_event(title="Private", is_public=False)

    await service.fetch_all_public_events()

    assert [event.id for event in service.all_public_events] == [sooner.id, later.id]
    assert service.error_message == ""
    assert not service.is_loading


async def test_fetch_my_events_newest_first(service, seed_event):
    now = utcnow()
    older = await seed_event(created_at=now - timedelta(days=2), is_public=False)
    newer = await seed_event(created_at=now - timedelta(hours=1))
    await seed_event(organizer_id="someone-else")

    await service.fetch_my_events("organizer-1")

    # Private events still belong to their organizer
    assert [event.id for event in service.my_events] == [newer.id, older.id]


async def test_fetch_joined_events(service, seed_event):
    joined = await seed_event(participant_ids=["u1", "u2"], current_participants=2)
    await seed_event(participant_ids=["u2"], current_participants=1)

    await service.fetch_joined_events("u1")

    assert [event.id for event in service.joined_events] == [joined.id]


async def test_fetch_skips_malformed_documents(service, store, seed_event):
    good = await seed_event()
    broken = encode(good)
    del broken["location"]
    await store.add_document("events", broken)

    await service.fetch_all_public_events()

    assert [event.id for event in service.all_public_events] == [good.id]


async def test_fetch_failure_keeps_previous_projection(flaky_store, make_event):
    service = EventSyncService(flaky_store, collection="events")
    event = await _seed(flaky_store, make_event)
    await service.fetch_all_public_events()

    flaky_store.failing.add("get_documents")
    await service.fetch_all_public_events()

    assert [e.id for e in service.all_public_events] == [event.id]
    assert service.error_message == "Failed to load events"
    assert service.last_error.code is ErrorCode.LOAD_FAILED
    assert not service.is_loading


@pytest.mark.parametrize(
    "fetch, message",
    [
        ("fetch_my_events", "Failed to load your events"),
        ("fetch_joined_events", "Failed to load joined events"),
    ],
)
async def test_user_fetch_failures_have_their_own_message(flaky_store, fetch, message):
    service = EventSyncService(flaky_store, collection="events")
    flaky_store.failing.add("get_documents")

    await getattr(service, fetch)("u1")

    assert service.error_message == message


async def test_next_operation_clears_previous_error(flaky_store):
    service = EventSyncService(flaky_store, collection="events")
    flaky_store.failing.add("get_documents")
    await service.fetch_all_public_events()
    flaky_store.failing.clear()

    await service.fetch_all_public_events()

    assert service.last_error is None


async def test_get_event_reads_store(service, seed_event):
    event = await seed_event()

    loaded = await service.get_event(event.id)

    assert loaded.title == "Jazz Night"
    assert await service.get_event("missing") is None
    assert service.last_error.code is ErrorCode.EVENT_NOT_FOUND


# Mutations


async def test_create_event_assigns_id_and_refreshes_public_events(service, store, make_event):
    created = await service.create_event(make_event(max_participants=10))

    assert created is not None and created.id
    stored = await store.get_document("events", created.id)
    assert stored.data["currentParticipants"] == 0
    assert stored.data["participantIds"] == []
    assert [event.id for event in service.all_public_events] == [created.id]


async def test_create_event_failure(flaky_store, make_event):
    service = EventSyncService(flaky_store, collection="events")
    flaky_store.failing.add("add_document")

    assert await service.create_event(make_event()) is None
    assert service.error_message == "Failed to create event"


async def test_update_event_requires_id(service, make_event):
    assert not await service.update_event(make_event())
    assert service.error_message == "Invalid event ID"


async def test_update_event_keeps_membership_and_clears_optionals(service, store, seed_event):
    event = await seed_event(
        address="131 W 3rd St",
        max_participants=5,
        participant_ids=["u1"],
        current_participants=1,
    )
    # An edit form built from a stale copy without the latest participants
    edited = event.model_copy(
        update={"title": "Jazz Night II", "address": None, "participant_ids": [], "current_participants": 0}
    )

    assert await service.update_event(edited)

    stored = (await store.get_document("events", event.id)).data
    assert stored["title"] == "Jazz Night II"
    assert "address" not in stored
    assert stored["maxParticipants"] == 5
    assert stored["participantIds"] == ["u1"]
    assert stored["currentParticipants"] == 1
    assert stored["createdAt"] == event.created_at
    assert stored["updatedAt"] > event.updated_at


async def test_update_missing_event(service, make_event):
    ghost = make_event().model_copy(update={"id": "ghost"})

    assert not await service.update_event(ghost)
    assert service.last_error.code is ErrorCode.EVENT_NOT_FOUND


async def test_update_event_failure(flaky_store, make_event):
    service = EventSyncService(flaky_store, collection="events")
    event = await _seed(flaky_store, make_event)
    flaky_store.failing.add("transact")

    assert not await service.update_event(event)
    assert service.error_message == "Failed to update event"


async def test_update_cannot_lower_cap_below_participants(service, store, seed_event):
    event = await seed_event(max_participants=3)
    for user_id in ("u1", "u2", "u3"):
        assert await service.join_event(event, user_id)

    # The editor's copy predates every join
    assert not await service.update_event(event.model_copy(update={"max_participants": 1}))

    assert service.last_error.code is ErrorCode.CAPACITY_BELOW_PARTICIPANTS
    stored = (await store.get_document("events", event.id)).data
    assert stored["maxParticipants"] == 3
    assert stored["participantIds"] == ["u1", "u2", "u3"]


async def test_update_can_lower_cap_to_participant_count(service, store, seed_event):
    event = await seed_event(max_participants=5)
    assert await service.join_event(event, "u1")

    assert await service.update_event(event.model_copy(update={"max_participants": 1}))

    stored = (await store.get_document("events", event.id)).data
    assert stored["maxParticipants"] == 1
    assert stored["currentParticipants"] == 1


async def test_delete_event_removes_it_from_every_projection(service, store, seed_event):
    event = await seed_event(participant_ids=["organizer-1"], current_participants=1)
    other = await seed_event(title="Other")
    await service.fetch_all_public_events()
    await service.fetch_my_events("organizer-1")
    await service.fetch_joined_events("organizer-1")

    assert await service.delete_event(event.id)

    assert await store.get_document("events", event.id) is None
    assert [e.id for e in service.all_public_events] == [other.id]
    assert [e.id for e in service.my_events] == [other.id]
    assert service.joined_events == ()


async def test_delete_event_failure(flaky_store, make_event):
    service = EventSyncService(flaky_store, collection="events")
    event = await _seed(flaky_store, make_event)
    flaky_store.failing.add("delete_document")

    assert not await service.delete_event(event.id)
    assert service.error_message == "Failed to delete event"


# Membership


async def test_join_event_registers_participant(service, store, seed_event):
    event = await seed_event(max_participants=3)

    assert await service.join_event(event, "u1")

    stored = (await store.get_document("events", event.id)).data
    assert stored["participantIds"] == ["u1"]
    assert stored["currentParticipants"] == 1


async def test_join_requires_id(service, make_event):
    assert not await service.join_event(make_event(), "u1")
    assert service.error_message == "Invalid event ID"


async def test_local_guards_reject_without_touching_store(spy_store, make_event):
    service = EventSyncService(spy_store, collection="events")
    registered = await _seed(
        spy_store, make_event, max_participants=5, participant_ids=["u1"], current_participants=1
    )
    full = await _seed(
        spy_store, make_event, max_participants=1, participant_ids=["u2"], current_participants=1
    )

    assert not await service.join_event(registered, "u1")
    assert service.error_message == "You are already registered for this event"
    assert not await service.join_event(full, "u3")
    assert service.error_message == "This event is full"
    assert not await service.leave_event(registered, "u3")
    assert service.error_message == "You are not registered for this event"
    assert spy_store.transactions == 0


async def test_leave_event_unregisters_participant(service, store, seed_event):
    event = await seed_event(participant_ids=["u1", "u2"], current_participants=2)

    assert await service.leave_event(event, "u1")

    stored = (await store.get_document("events", event.id)).data
    assert stored["participantIds"] == ["u2"]
    assert stored["currentParticipants"] == 1


async def test_capacity_walkthrough(service, seed_event):
    event = await seed_event(title="Jazz Night", max_participants=2)

    assert await service.join_event(await service.get_event(event.id), "u1")
    assert await service.join_event(await service.get_event(event.id), "u2")

    current = await service.get_event(event.id)
    assert current.is_full
    assert current.spots_left == 0
    assert not await service.join_event(current, "u3")
    assert service.error_message == "This event is full"

    assert await service.leave_event(current, "u1")
    assert await service.join_event(await service.get_event(event.id), "u3")

    final = await service.get_event(event.id)
    assert final.participant_ids == ["u2", "u3"]
    assert final.current_participants == 2


async def test_stale_snapshot_cannot_overfill_event(store, seed_event):
    event = await seed_event(max_participants=1)
    first = EventSyncService(store, collection="events")
    second = EventSyncService(store, collection="events")

    # Both callers hold the same copy showing a free spot
    results = await asyncio.gather(
        first.join_event(event, "u1"),
        second.join_event(event, "u2"),
    )

    assert sorted(results) == [False, True]
    loser = first if not results[0] else second
    assert loser.error_message == "This event is full"
    stored = (await store.get_document("events", event.id)).data
    assert stored["currentParticipants"] == 1
    assert len(stored["participantIds"]) == 1


async def test_stale_snapshot_cannot_double_join(service, store, seed_event):
    event = await seed_event(max_participants=5)
    assert await service.join_event(event, "u1")

    # event still shows no participants
    assert not await service.join_event(event, "u1")
    assert service.error_message == "You are already registered for this event"
    stored = (await store.get_document("events", event.id)).data
    assert stored["currentParticipants"] == 1


async def test_join_deleted_event(service, store, seed_event):
    event = await seed_event()
    await store.delete_document("events", event.id)

    assert not await service.join_event(event, "u1")
    assert service.last_error.code is ErrorCode.EVENT_NOT_FOUND


async def test_membership_transport_failures(flaky_store, make_event):
    service = EventSyncService(flaky_store, collection="events")
    event = await _seed(flaky_store, make_event, participant_ids=["u1"], current_participants=1)
    flaky_store.failing.add("transact")

    assert not await service.join_event(event, "u2")
    assert service.error_message == "Failed to join event"
    assert not await service.leave_event(event, "u1")
    assert service.error_message == "Failed to leave event"


# Local views


async def test_local_views_filter_public_events(service, seed_event):
    now = utcnow()
    jazz = await seed_event(title="Jazz Night", start_date=now + timedelta(days=1))
    market = await seed_event(
        title="Street Food Market",
        description="Tacos and more",
        location="Harbor",
        category=EventCategory.FOOD,
        is_free=False,
        price=12.5,
        start_date=now + timedelta(days=2),
    )
    past = await seed_event(
        title="Yesterday's Talk",
        description="Quarterly numbers",
        category=EventCategory.BUSINESS,
        status=EventStatus.COMPLETED,
        start_date=now - timedelta(days=1),
    )
    await service.fetch_all_public_events()

    assert [e.id for e in service.search_events("")] == [past.id, jazz.id, market.id]
    assert [e.id for e in service.search_events("JAZZ")] == [jazz.id]
    assert [e.id for e in service.search_events("harbor")] == [market.id]
    assert [e.id for e in service.search_events("tacos")] == [market.id]
    assert [e.id for e in service.filter_by_category(EventCategory.FOOD)] == [market.id]
    assert [e.id for e in service.filter_by_status(EventStatus.COMPLETED)] == [past.id]
    assert [e.id for e in service.free_events()] == [past.id, jazz.id]
    assert [e.id for e in service.paid_events()] == [market.id]
    assert [e.id for e in service.upcoming_events()] == [jazz.id, market.id]


# Subscriptions


async def test_listener_keeps_public_events_current(service, make_event, settle):
    seen = []
    service.add_observer(lambda projection, events: seen.append((projection, len(events))))
    service.start_listening()
    await settle()

    assert service.is_listening(Projection.ALL_PUBLIC)
    assert service.all_public_events == ()

    created = await service.create_event(make_event())
    await settle()

    assert [e.id for e in service.all_public_events] == [created.id]
    assert (Projection.ALL_PUBLIC, 1) in seen


async def test_joined_listener_follows_membership(service, seed_event, settle):
    event = await seed_event(max_participants=2)
    service.start_joined_events_listener("u1")
    await settle()
    assert service.joined_events == ()

    assert await service.join_event(event, "u1")
    await settle()

    assert [e.id for e in service.joined_events] == [event.id]
    assert service.joined_events[0].current_participants == 1


async def test_restarting_listener_replaces_subscription(service, seed_event, settle):
    await seed_event(organizer_id="u1")
    mine = await seed_event(organizer_id="u2")

    service.start_my_events_listener("u1")
    service.start_my_events_listener("u2")
    await settle()

    assert [e.id for e in service.my_events] == [mine.id]


async def test_stop_listening_is_idempotent(service, store, make_event, settle):
    service.start_listening()
    await settle()

    service.stop_listening()
    service.stop_listening()
    service.stop_my_events_listener()

    await store.add_document("events", encode(make_event()))
    await settle()

    assert not service.is_listening(Projection.ALL_PUBLIC)
    assert service.all_public_events == ()


async def test_snapshot_after_cancel_is_discarded(spy_store, make_event, settle):
    service = EventSyncService(spy_store, collection="events")
    service.start_listening()
    await settle()
    stale_handler = spy_store.handlers[-1]
    service.stop_listening()

    await _seed(spy_store, make_event)
    snapshot = await spy_store.get_documents(service.public_events_query())
    stale_handler(snapshot, None)
    await settle()

    assert len(snapshot) == 1
    assert service.all_public_events == ()


async def test_listener_error_sets_message_and_keeps_projection(spy_store, make_event, settle):
    service = EventSyncService(spy_store, collection="events")
    event = await _seed(spy_store, make_event)
    service.start_listening()
    await settle()

    spy_store.handlers[-1](None, StoreError("stream dropped"))
    await settle()

    assert service.error_message == "Failed to load events"
    assert [e.id for e in service.all_public_events] == [event.id]


async def test_close_cancels_every_listener(make_event, settle):
    store = MemoryDocumentStore()
    async with EventSyncService(store, collection="events") as service:
        service.start_listening()
        service.start_my_events_listener("organizer-1")
        service.start_joined_events_listener("organizer-1")
        await settle()

    for projection in Projection:
        assert not service.is_listening(projection)
    service.close()

    await store.add_document("events", encode(make_event()))
    await settle()
    assert service.all_public_events == ()
    assert service.my_events == ()


async def test_dropped_service_cancels_its_listeners(settle):
    store = MemoryDocumentStore()
    service = EventSyncService(store, collection="events")
    service.start_listening()
    service.start_joined_events_listener("u1")
    await settle()
    assert len(store._listeners) == 2

    del service
    gc.collect()

    assert store._listeners == {}
