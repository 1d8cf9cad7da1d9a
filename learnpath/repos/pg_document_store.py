"""PostgreSQL implementation of DocumentStore.

One `documents` table holds every collection as JSONB (see db/tables.py).
Each call runs in its own short transaction:

  - merge/update writes lock the row (SELECT ... FOR UPDATE) for the
    read-merge-write, so two merges on one document serialize
  - increment_field is a single INSERT ... ON CONFLICT DO UPDATE with
    jsonb_set arithmetic, atomic without a read round-trip
  - equality predicates are pushed down as `data @> {...}` (GIN index);
    range and membership predicates are evaluated on the fetched rows
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import ARRAY, Text, bindparam, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnpath.core.config import SETTINGS
from learnpath.core.errors import (
    DocumentAlreadyExists,
    DocumentNotFound,
    StoreUnavailable,
)
from learnpath.core.metrics import STORE_OPERATION_DURATION
from learnpath.db.change_feed import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangePredicate,
    Subscription,
)
from learnpath.db.tables import DocumentRow
from learnpath.repos.document_store import (
    Document,
    DocumentSnapshot,
    Predicate,
    apply_updates,
    deep_merge,
    matches,
    now_epoch,
    order_and_limit,
    resolve_timestamps,
    set_path,
    validate_predicates,
)

logger = logging.getLogger(__name__)

_TRANSIENT = (OperationalError, InterfaceError, OSError, TimeoutError)

_INCREMENT_SQL = text(
    """
    INSERT INTO documents (collection, id, data, updated_at)
    VALUES (
        :collection,
        :id,
        jsonb_set('{}'::jsonb, :path, to_jsonb(CAST(:delta AS numeric)), true),
        :now
    )
    ON CONFLICT (collection, id) DO UPDATE
    SET data = jsonb_set(
            documents.data,
            :path,
            to_jsonb(
                COALESCE((documents.data #>> :path)::numeric, 0)
                + CAST(:delta AS numeric)
            ),
            true
        ),
        updated_at = :now
    RETURNING data
    """
).bindparams(bindparam("path", type_=ARRAY(Text)))


def _equality_filter(predicates: Sequence[Predicate]) -> Document:
    containment: Document = {}
    for field, op, value in predicates:
        if op == "==":
            set_path(containment, field, value)
    return containment


class PgDocumentStore:
    """Satisfies the DocumentStore Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        feed: ChangeFeed,
        origin: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed
        self.origin = origin or SETTINGS.instance_id

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        start = time.monotonic()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except _TRANSIENT as exc:
            logger.warning("Document store %s failed: %s", operation, exc)
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc
        finally:
            STORE_OPERATION_DURATION.labels(operation=operation).observe(
                time.monotonic() - start
            )

    async def _publish(self, collection: str, doc_id: str, data: Document) -> None:
        """Announce a committed write. A feed failure does not undo the write."""
        try:
            await self._feed.publish(
                ChangeEvent(
                    collection=collection, doc_id=doc_id, data=data, origin=self.origin
                )
            )
        except Exception:
            # Readers fall back to the cache TTL for this document.
            logger.exception(
                "Change event for %s/%s not published", collection, doc_id
            )

    async def _locked(
        self, session: AsyncSession, collection: str, doc_id: str
    ) -> DocumentRow | None:
        stmt = (
            select(DocumentRow)
            .where(DocumentRow.collection == collection, DocumentRow.id == doc_id)
            .with_for_update()
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        async with self._transaction("get") as session:
            row = await session.get(DocumentRow, (collection, doc_id))
            return dict(row.data) if row is not None else None

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        now = now_epoch()
        resolved = resolve_timestamps(fields, now)
        async with self._transaction("set") as session:
            row = await self._locked(session, collection, doc_id)
            if row is None:
                data = dict(resolved)
                row = DocumentRow(
                    collection=collection, id=doc_id, data=data, updated_at=now
                )
                session.add(row)
            else:
                data = deep_merge(row.data, resolved) if merge else dict(resolved)
                row.data = data
                row.updated_at = now
        await self._publish(collection, doc_id, data)

    async def create_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None:
        now = now_epoch()
        data = resolve_timestamps(fields, now)
        stmt = (
            insert(DocumentRow)
            .values(collection=collection, id=doc_id, data=data, updated_at=now)
            .on_conflict_do_nothing(index_elements=["collection", "id"])
        )
        async with self._transaction("create") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise DocumentAlreadyExists(collection, doc_id)
        await self._publish(collection, doc_id, data)

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> None:
        now = now_epoch()
        resolved = resolve_timestamps(fields, now)
        async with self._transaction("update") as session:
            row = await self._locked(session, collection, doc_id)
            if row is None:
                raise DocumentNotFound(collection, doc_id)
            data = apply_updates(row.data, resolved)
            row.data = data
            row.updated_at = now
        await self._publish(collection, doc_id, data)

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        validate_predicates(predicates)
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        containment = _equality_filter(predicates)
        if containment:
            stmt = stmt.where(DocumentRow.data.contains(containment))
        async with self._transaction("query") as session:
            rows = (await session.execute(stmt)).scalars().all()
            snapshots = [
                DocumentSnapshot(id=row.id, data=dict(row.data))
                for row in rows
                if matches(row.data, predicates)
            ]
        return order_and_limit(snapshots, order_by, limit)

    async def increment_field(
        self, collection: str, doc_id: str, field: str, delta: float
    ) -> None:
        async with self._transaction("increment") as session:
            result = await session.execute(
                _INCREMENT_SQL,
                {
                    "collection": collection,
                    "id": doc_id,
                    "path": field.split("."),
                    "delta": delta,
                    "now": now_epoch(),
                },
            )
            data = dict(result.scalar_one())
        await self._publish(collection, doc_id, data)

    def on_change(
        self,
        collection: str,
        predicate: ChangePredicate | None,
        callback: ChangeCallback,
    ) -> Subscription:
        return self._feed.subscribe(collection, predicate, callback)
