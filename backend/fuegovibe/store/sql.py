"""SQL implementation of the DocumentStore.

Documents live in the ``documents`` table as JSON. Blocking SQLModel sessions
run in worker threads; change notifications go through ``RedisChangeFeed``
when one is attached, otherwise straight to local subscribers.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set
from uuid import uuid4

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from fuegovibe.models.document import StoredDocument
from fuegovibe.store.change_feed import RedisChangeFeed
from fuegovibe.store.interfaces import (
    DocumentNotFoundError,
    DocumentStore,
    SnapshotHandler,
    Subscription,
    TransactionFn,
)
from fuegovibe.store.query import DocumentSnapshot, Query, QuerySnapshot, apply_changes

logger = logging.getLogger(__name__)

TIMESTAMP_KEY = "$timestamp"


def dump_value(value: Any) -> Any:
    """Make document data JSON-safe, tagging timestamps."""
    if isinstance(value, datetime):
        return {TIMESTAMP_KEY: value.isoformat()}
    if isinstance(value, dict):
        return {key: dump_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [dump_value(item) for item in value]
    return value


def load_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {TIMESTAMP_KEY}:
            return datetime.fromisoformat(value[TIMESTAMP_KEY])
        return {key: load_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [load_value(item) for item in value]
    return value


@dataclass
class _Listener:
    query: Query
    handler: SnapshotHandler
    last: Optional[QuerySnapshot] = None
    active: bool = True
    sequence: int = 0


class SQLDocumentStore(DocumentStore):
    """Relational database backed document store."""

    def __init__(self, engine: Engine, change_feed: RedisChangeFeed | None = None) -> None:
        self.engine = engine
        self.change_feed = change_feed
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        # Initial deliveries in flight; the loop only keeps weak references
        self._pending: Set[asyncio.Task] = set()
        # sqlite ignores FOR UPDATE; serialise read-modify-write in this process
        self._write_lock = threading.Lock()
        if change_feed is not None:
            change_feed.add_handler(self.refresh)

    # Blocking helpers, executed in worker threads

    def _load_collection(self, collection: str) -> List[DocumentSnapshot]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(StoredDocument).where(StoredDocument.collection == collection)
            ).all()
            return [DocumentSnapshot(id=row.id, data=load_value(row.data)) for row in rows]

    def _query_sync(self, query: Query) -> QuerySnapshot:
        return query.apply(self._load_collection(query.collection))

    def _get_sync(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with Session(self.engine) as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                return None
            return DocumentSnapshot(id=row.id, data=load_value(row.data))

    def _set_sync(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        with Session(self.engine) as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                row = StoredDocument(collection=collection, id=doc_id, data=dump_value(dict(data)))
            else:
                row.data = dump_value(dict(data))
                row.touch()
            session.add(row)
            session.commit()

    def _update_sync(self, collection: str, doc_id: str, fn: TransactionFn) -> dict:
        with self._write_lock, Session(self.engine) as session:
            row = session.exec(
                select(StoredDocument)
                .where(
                    StoredDocument.collection == collection,
                    StoredDocument.id == doc_id,
                )
                .with_for_update()
            ).one_or_none()
            if row is None:
                raise DocumentNotFoundError(collection, doc_id)
            current = load_value(row.data)
            updated = apply_changes(current, fn(current))
            row.data = dump_value(updated)
            row.touch()
            session.add(row)
            session.commit()
            return updated

    def _delete_sync(self, collection: str, doc_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    # DocumentStore

    async def get_documents(self, query: Query) -> QuerySnapshot:
        return await asyncio.to_thread(self._query_sync, query)

    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        return await asyncio.to_thread(self._get_sync, collection, doc_id)

    async def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        await asyncio.to_thread(self._set_sync, collection, doc_id, data)
        await self._changed(collection)
        return doc_id

    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[str, Any]
    ) -> None:
        await asyncio.to_thread(self._set_sync, collection, doc_id, data)
        await self._changed(collection)

    async def update_document(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> None:
        await asyncio.to_thread(self._update_sync, collection, doc_id, lambda _: changes)
        await self._changed(collection)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        removed = await asyncio.to_thread(self._delete_sync, collection, doc_id)
        if removed:
            await self._changed(collection)

    async def transact(
        self, collection: str, doc_id: str, fn: TransactionFn
    ) -> dict:
        result = await asyncio.to_thread(self._update_sync, collection, doc_id, fn)
        await self._changed(collection)
        return result

    def subscribe(self, query: Query, handler: SnapshotHandler) -> Subscription:
        loop = asyncio.get_running_loop()
        listener_id = next(self._listener_ids)
        listener = _Listener(query=query, handler=handler)
        self._listeners[listener_id] = listener
        task = loop.create_task(self._deliver(listener))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        def _remove() -> None:
            listener.active = False
            self._listeners.pop(listener_id, None)

        return Subscription(_remove)

    async def refresh(self, collection: str) -> None:
        """Push fresh snapshots to every local subscription on ``collection``."""
        for listener in list(self._listeners.values()):
            if listener.query.collection == collection:
                await self._deliver(listener)

    async def _changed(self, collection: str) -> None:
        if self.change_feed is not None and self.change_feed.connected:
            if await self.change_feed.publish(collection):
                return
        await self.refresh(collection)

    async def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        listener.sequence += 1
        sequence = listener.sequence
        try:
            snapshot = await asyncio.to_thread(self._query_sync, listener.query)
        except Exception as exc:
            logger.error(f"Snapshot query failed for {listener.query.collection}: {exc}")
            if listener.active:
                self._dispatch(listener, None, exc)
            return
        # Cancelled, or overtaken by a newer query, while this one was running
        if not listener.active or sequence != listener.sequence:
            return
        if snapshot == listener.last:
            return
        listener.last = snapshot
        self._dispatch(listener, snapshot, None)

    @staticmethod
    def _dispatch(
        listener: _Listener, snapshot: Optional[QuerySnapshot], error: Optional[Exception]
    ) -> None:
        try:
            listener.handler(snapshot, error)
        except Exception:
            logger.error("Snapshot handler failed", exc_info=True)

    async def close(self) -> None:
        for listener in self._listeners.values():
            listener.active = False
        self._listeners.clear()
        for task in list(self._pending):
            task.cancel()
        if self.change_feed is not None and self.change_feed.connected:
            await self.change_feed.disconnect()
        self.engine.dispose()
