"""In-process document store.

Backs local development (``STORE_BACKEND=memory``) and the test suite.
Snapshots are delivered asynchronously on the running event loop.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from fuegovibe.store.interfaces import (
    DocumentNotFoundError,
    DocumentStore,
    SnapshotHandler,
    Subscription,
    TransactionFn,
)
from fuegovibe.store.query import DocumentSnapshot, Query, QuerySnapshot, apply_changes

logger = logging.getLogger(__name__)


@dataclass
class _Listener:
    query: Query
    handler: SnapshotHandler
    loop: asyncio.AbstractEventLoop
    last: Optional[QuerySnapshot] = field(default=None)
    active: bool = True


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store with push subscriptions."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def _snapshot(self, query: Query) -> QuerySnapshot:
        documents = self._collections.get(query.collection, {})
        return query.apply(
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in documents.items()
        )

    async def get_documents(self, query: Query) -> QuerySnapshot:
        return self._snapshot(query)

    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))

    async def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(dict(data))
        self._notify(collection)
        return doc_id

    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[str, Any]
    ) -> None:
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(dict(data))
        self._notify(collection)

    async def update_document(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> None:
        async with self._lock:
            documents = self._collections.get(collection, {})
            if doc_id not in documents:
                raise DocumentNotFoundError(collection, doc_id)
            documents[doc_id] = apply_changes(documents[doc_id], changes)
        self._notify(collection)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            removed = self._collections.get(collection, {}).pop(doc_id, None)
        if removed is not None:
            self._notify(collection)

    async def transact(
        self, collection: str, doc_id: str, fn: TransactionFn
    ) -> dict:
        async with self._lock:
            documents = self._collections.get(collection, {})
            if doc_id not in documents:
                raise DocumentNotFoundError(collection, doc_id)
            changes = fn(copy.deepcopy(documents[doc_id]))
            documents[doc_id] = apply_changes(documents[doc_id], changes)
            result = copy.deepcopy(documents[doc_id])
        self._notify(collection)
        return result

    def subscribe(self, query: Query, handler: SnapshotHandler) -> Subscription:
        loop = asyncio.get_running_loop()
        listener_id = next(self._listener_ids)
        listener = _Listener(query=query, handler=handler, loop=loop)
        self._listeners[listener_id] = listener
        loop.call_soon(self._deliver, listener)

        def _remove() -> None:
            listener.active = False
            self._listeners.pop(listener_id, None)

        return Subscription(_remove)

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners.values()):
            if listener.query.collection == collection:
                listener.loop.call_soon_threadsafe(self._deliver, listener)

    def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        snapshot = self._snapshot(listener.query)
        if snapshot == listener.last:
            return
        listener.last = snapshot
        try:
            listener.handler(snapshot, None)
        except Exception:
            logger.error("Snapshot handler failed", exc_info=True)
