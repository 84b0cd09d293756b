"""Store interfaces (repository pattern).

Stores must be swappable; the sync service only depends on ``DocumentStore``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

from fuegovibe.store.query import DocumentSnapshot, Query, QuerySnapshot

# Called with (snapshot, None) on every result change, or (None, error)
SnapshotHandler = Callable[[Optional[QuerySnapshot], Optional[Exception]], None]

# Receives the current document data and returns the partial update to apply
TransactionFn = Callable[[dict], Mapping[str, Any]]


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class Subscription:
    """Handle for a push subscription. ``cancel`` is idempotent."""

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel()


class DocumentStore(ABC):
    """Interface for document persistence and change subscriptions."""

    @abstractmethod
    async def get_documents(self, query: Query) -> QuerySnapshot:
        """Run a one-shot query."""
        ...

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        """Return a document by id, or None if not found."""
        ...

    @abstractmethod
    async def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a document under a store-assigned id and return the id."""
        ...

    @abstractmethod
    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[str, Any]
    ) -> None:
        """Create or fully replace a document."""
        ...

    @abstractmethod
    async def update_document(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> None:
        """Apply a partial update.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        ...

    @abstractmethod
    async def transact(
        self, collection: str, doc_id: str, fn: TransactionFn
    ) -> dict:
        """Atomically read a document, compute a partial update and apply it.

        Any exception raised by ``fn`` aborts the transaction and propagates.
        Returns the document data after the update.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    def subscribe(self, query: Query, handler: SnapshotHandler) -> Subscription:
        """Push a full snapshot to ``handler`` now and on every matching change."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
