from __future__ import annotations

import asyncio
import os
from datetime import timedelta
from typing import Any, Callable

import pytest

# Settings are read once at import time
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("CHANGE_FEED_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAILS", "admin@fuegovibe.test")
os.environ.setdefault("SECRET_KEY", "test-secret")

from fuegovibe.models.event import Event, EventCategory, utcnow  # noqa: E402
from fuegovibe.services.codec import encode  # noqa: E402
from fuegovibe.services.event_sync import EventSyncService  # noqa: E402
from fuegovibe.store.memory import MemoryDocumentStore  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def service(store: MemoryDocumentStore) -> EventSyncService:
    return EventSyncService(store, collection="events")


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Build an unsaved event a week from now; keyword arguments override fields."""

    def _make(**overrides: Any) -> Event:
        start = overrides.pop("start_date", utcnow() + timedelta(days=7))
        fields: dict = {
            "title": "Jazz Night",
            "description": "Live jazz with the house trio",
            "category": EventCategory.MUSIC,
            "start_date": start,
            "end_date": start + timedelta(hours=3),
            "location": "Blue Note",
            "organizer_id": "organizer-1",
            "organizer_email": "organizer@fuegovibe.test",
        }
        fields.update(overrides)
        return Event(**fields)

    return _make


@pytest.fixture
def seed_event(store: MemoryDocumentStore, make_event):
    """Write an event straight into the store and return it with its id."""

    async def _seed(**overrides: Any) -> Event:
        event = make_event(**overrides)
        event_id = await store.add_document("events", encode(event))
        return event.model_copy(update={"id": event_id})

    return _seed


@pytest.fixture
def settle():
    """Let queued snapshot deliveries run."""

    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def wait_for():
    """Poll ``predicate`` until it holds; for stores that deliver from worker threads."""

    async def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.01)

    return _wait_for
