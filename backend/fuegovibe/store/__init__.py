from .change_feed import RedisChangeFeed
from .interfaces import DocumentNotFoundError, DocumentStore, StoreError, Subscription
from .memory import MemoryDocumentStore
from .query import (
    ArrayRemove,
    ArrayUnion,
    DELETE_FIELD,
    DocumentSnapshot,
    FieldFilter,
    Increment,
    Query,
    QuerySnapshot,
)
from .sql import SQLDocumentStore

__all__ = [
    "ArrayRemove",
    "ArrayUnion",
    "DELETE_FIELD",
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "Increment",
    "MemoryDocumentStore",
    "Query",
    "QuerySnapshot",
    "RedisChangeFeed",
    "SQLDocumentStore",
    "StoreError",
    "Subscription",
]
