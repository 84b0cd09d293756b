"""Query, snapshot and field-transform primitives shared by every store."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Tuple

FilterOp = Literal["==", "array_contains"]


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            return False
        current = data[self.field]
        if self.op == "==":
            return current == self.value
        if self.op == "array_contains":
            return isinstance(current, list) and self.value in current
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict


@dataclass(frozen=True)
class QuerySnapshot:
    """Complete result set of a query at one point in time."""

    documents: Tuple[DocumentSnapshot, ...] = ()

    def __len__(self) -> int:
        return len(self.documents)

    def __iter__(self):
        return iter(self.documents)


@dataclass(frozen=True)
class Query:
    """Equality / array-contains filters over one collection with a single sort key."""

    collection: str
    filters: Tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False

    def where(self, field_name: str, op: FilterOp, value: Any) -> "Query":
        return Query(
            collection=self.collection,
            filters=self.filters + (FieldFilter(field_name, op, value),),
            order_by=self.order_by,
            descending=self.descending,
        )

    def order(self, field_name: str, descending: bool = False) -> "Query":
        return Query(
            collection=self.collection,
            filters=self.filters,
            order_by=field_name,
            descending=descending,
        )

    def matches(self, data: Mapping[str, Any]) -> bool:
        # Documents without the sort field are excluded from ordered results
        if self.order_by is not None and data.get(self.order_by) is None:
            return False
        return all(f.matches(data) for f in self.filters)

    def apply(self, documents: Iterable[DocumentSnapshot]) -> QuerySnapshot:
        selected = [doc for doc in documents if self.matches(doc.data)]
        if self.order_by is not None:
            key = self.order_by
            selected.sort(key=lambda doc: (doc.data[key], doc.id), reverse=self.descending)
        return QuerySnapshot(documents=tuple(selected))


@dataclass(frozen=True)
class Increment:
    amount: int = 1


@dataclass(frozen=True)
class ArrayUnion:
    values: Tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ArrayRemove:
    values: Tuple[Any, ...] = field(default_factory=tuple)


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"


# Removes the field from the document when used as an update value
DELETE_FIELD = _DeleteField()


def apply_changes(data: Mapping[str, Any], changes: Mapping[str, Any]) -> dict:
    """Return a copy of ``data`` with a partial update applied.

    Plain values overwrite; ``Increment``, ``ArrayUnion``, ``ArrayRemove`` and
    ``DELETE_FIELD`` transform the current value the way a document database
    does server side.
    """
    updated = copy.deepcopy(dict(data))
    for key, change in changes.items():
        current = updated.get(key)
        if change is DELETE_FIELD:
            updated.pop(key, None)
        elif isinstance(change, Increment):
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            updated[key] = base + change.amount
        elif isinstance(change, ArrayUnion):
            values = list(current) if isinstance(current, list) else []
            for value in change.values:
                if value not in values:
                    values.append(value)
            updated[key] = values
        elif isinstance(change, ArrayRemove):
            values = list(current) if isinstance(current, list) else []
            updated[key] = [value for value in values if value not in change.values]
        else:
            updated[key] = copy.deepcopy(change)
    return updated
