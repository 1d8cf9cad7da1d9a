"""Generic asynchronous document store.

The progress engine only needs a small contract from its backend:

  get_document / set_document / create_document / update_document
  query(collection, predicates, order_by, limit)
  increment_field   the one concurrency-safe write, used for every counter
  on_change         push notifications (see learnpath/db/change_feed.py)

Documents are plain JSON-compatible dicts.  Dotted keys ("progress.progress")
address nested fields in update_document, query predicates and order_by.
SERVER_TIMESTAMP may appear anywhere in written fields; the store replaces
it with the write time in epoch seconds.

There are no multi-document transactions: callers keep consistency through
idempotent check-then-act steps and atomic increments.
"""

from __future__ import annotations

import copy
import datetime
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from learnpath.core.config import SETTINGS
from learnpath.core.errors import DocumentAlreadyExists, DocumentNotFound
from learnpath.db.change_feed import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangePredicate,
    InMemoryChangeFeed,
    Subscription,
)

Document = dict[str, Any]
Predicate = tuple[str, str, Any]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()

_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array_contains")


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    id: str
    data: Document


class DocumentStore(Protocol):
    async def get_document(self, collection: str, doc_id: str) -> Document | None: ...

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None: ...

    async def create_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None: ...

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None: ...

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    async def increment_field(
        self, collection: str, doc_id: str, field: str, delta: float
    ) -> None: ...

    def on_change(
        self,
        collection: str,
        predicate: ChangePredicate | None,
        callback: ChangeCallback,
    ) -> Subscription: ...


# ---------------------------------------------------------------------------
# Helpers shared by every implementation
# ---------------------------------------------------------------------------


def now_epoch() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def resolve_timestamps(value: Any, now: int) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Mapping):
        return {k: resolve_timestamps(v, now) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_timestamps(v, now) for v in value]
    return value


def get_path(data: Mapping[str, Any], dotted: str) -> Any:
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def set_path(data: Document, dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def deep_merge(base: Document, fields: Mapping[str, Any]) -> Document:
    merged = copy.deepcopy(base)
    for key, value in fields.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_updates(base: Document, fields: Mapping[str, Any]) -> Document:
    updated = copy.deepcopy(base)
    for dotted, value in fields.items():
        set_path(updated, dotted, copy.deepcopy(value))
    return updated


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual != expected
    if op == "in":
        return actual in expected
    if op == "array_contains":
        return isinstance(actual, list) and expected in actual
    if actual is None:
        return False
    if op == "<":
        return actual < expected
    if op == "<=":
        return actual <= expected
    if op == ">":
        return actual > expected
    if op == ">=":
        return actual >= expected
    raise ValueError(f"unsupported query operator {op!r}")


def matches(data: Mapping[str, Any], predicates: Iterable[Predicate]) -> bool:
    return all(
        _compare(get_path(data, field), op, value) for field, op, value in predicates
    )


def validate_predicates(predicates: Iterable[Predicate]) -> None:
    for _field, op, _value in predicates:
        if op not in _OPERATORS:
            raise ValueError(f"unsupported query operator {op!r}")


def order_and_limit(
    snapshots: list[DocumentSnapshot], order_by: str | None, limit: int | None
) -> list[DocumentSnapshot]:
    if order_by:
        descending = order_by.startswith("-")
        field = order_by.lstrip("-")
        present = [s for s in snapshots if get_path(s.data, field) is not None]
        missing = [s for s in snapshots if get_path(s.data, field) is None]
        present.sort(key=lambda s: get_path(s.data, field), reverse=descending)
        snapshots = present + missing
    if limit is not None:
        snapshots = snapshots[:limit]
    return snapshots


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """Dict-backed store for tests and local dev.

    `as_origin()` returns a second handle on the same data and feed that
    tags its writes with a different origin, standing in for another
    browser tab or API instance writing to the shared store.
    """

    def __init__(
        self,
        *,
        feed: ChangeFeed | None = None,
        origin: str | None = None,
    ) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._feed: ChangeFeed = feed if feed is not None else InMemoryChangeFeed()
        self.origin = origin or SETTINGS.instance_id
        self.reads = 0

    def as_origin(self, origin: str) -> InMemoryDocumentStore:
        other = InMemoryDocumentStore(feed=self._feed, origin=origin)
        other._collections = self._collections
        return other

    def clear(self) -> None:
        self._collections.clear()
        self.reads = 0

    def _docs(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    async def _changed(self, collection: str, doc_id: str) -> None:
        data = self._docs(collection).get(doc_id)
        await self._feed.publish(
            ChangeEvent(
                collection=collection,
                doc_id=doc_id,
                data=copy.deepcopy(data),
                origin=self.origin,
            )
        )

    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        self.reads += 1
        data = self._docs(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        resolved = resolve_timestamps(fields, now_epoch())
        docs = self._docs(collection)
        if merge and doc_id in docs:
            docs[doc_id] = deep_merge(docs[doc_id], resolved)
        else:
            docs[doc_id] = copy.deepcopy(resolved)
        await self._changed(collection, doc_id)

    async def create_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None:
        docs = self._docs(collection)
        if doc_id in docs:
            raise DocumentAlreadyExists(collection, doc_id)
        docs[doc_id] = copy.deepcopy(resolve_timestamps(fields, now_epoch()))
        await self._changed(collection, doc_id)

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None:
        docs = self._docs(collection)
        if doc_id not in docs:
            raise DocumentNotFound(collection, doc_id)
        resolved = resolve_timestamps(fields, now_epoch())
        docs[doc_id] = apply_updates(docs[doc_id], resolved)
        await self._changed(collection, doc_id)

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        validate_predicates(predicates)
        self.reads += 1
        snapshots = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._docs(collection).items()
            if matches(data, predicates)
        ]
        return order_and_limit(snapshots, order_by, limit)

    async def increment_field(
        self, collection: str, doc_id: str, field: str, delta: float
    ) -> None:
        docs = self._docs(collection)
        doc = docs.setdefault(doc_id, {})
        current = get_path(doc, field) or 0
        set_path(doc, field, current + delta)
        await self._changed(collection, doc_id)

    def on_change(
        self,
        collection: str,
        predicate: ChangePredicate | None,
        callback: ChangeCallback,
    ) -> Subscription:
        return self._feed.subscribe(collection, predicate, callback)
