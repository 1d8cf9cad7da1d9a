from __future__ import annotations

import asyncio

import pytest

from learnpath.core.errors import DocumentAlreadyExists, DocumentNotFound
from learnpath.db.change_feed import ChangeEvent
from learnpath.repos.document_store import SERVER_TIMESTAMP, InMemoryDocumentStore


def _store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(origin="test")


def test_get_missing_document_is_none() -> None:
    assert asyncio.run(_store().get_document("courses", "nope")) is None


def test_set_then_get_returns_a_copy() -> None:
    store = _store()
    asyncio.run(store.set_document("courses", "c1", {"title": "A", "tags": ["x"]}))

    doc = asyncio.run(store.get_document("courses", "c1"))
    doc["tags"].append("mutated")

    assert asyncio.run(store.get_document("courses", "c1")) == {
        "title": "A",
        "tags": ["x"],
    }


def test_set_with_merge_keeps_other_fields() -> None:
    store = _store()
    asyncio.run(store.set_document("d", "1", {"a": 1, "nested": {"x": 1, "y": 2}}))
    asyncio.run(store.set_document("d", "1", {"nested": {"y": 3}}, merge=True))

    assert asyncio.run(store.get_document("d", "1")) == {
        "a": 1,
        "nested": {"x": 1, "y": 3},
    }


def test_create_refuses_existing_document() -> None:
    store = _store()
    asyncio.run(store.create_document("d", "1", {"a": 1}))

    with pytest.raises(DocumentAlreadyExists):
        asyncio.run(store.create_document("d", "1", {"a": 2}))
    assert asyncio.run(store.get_document("d", "1")) == {"a": 1}


def test_update_writes_dotted_fields_only() -> None:
    store = _store()
    doc = {"progress": {"a": 1, "b": 2}, "s": "x"}
    asyncio.run(store.create_document("d", "1", doc))

    asyncio.run(store.update_document("d", "1", {"progress.b": 5, "progress.c": 6}))

    assert asyncio.run(store.get_document("d", "1")) == {
        "progress": {"a": 1, "b": 5, "c": 6},
        "s": "x",
    }


def test_update_missing_document_raises() -> None:
    with pytest.raises(DocumentNotFound):
        asyncio.run(_store().update_document("d", "missing", {"a": 1}))


def test_server_timestamp_resolves_to_epoch_seconds() -> None:
    store = _store()
    fields = {"at": SERVER_TIMESTAMP, "n": {"at": SERVER_TIMESTAMP}}
    asyncio.run(store.create_document("d", "1", fields))

    doc = asyncio.run(store.get_document("d", "1"))
    assert isinstance(doc["at"], int)
    assert doc["n"]["at"] == doc["at"]


def test_increment_creates_and_accumulates() -> None:
    store = _store()
    asyncio.run(store.increment_field("userStats", "u1", "completed_courses", 1))
    asyncio.run(store.increment_field("userStats", "u1", "completed_courses", 1))
    asyncio.run(store.increment_field("userStats", "u1", "hours_learned", 1.5))

    assert asyncio.run(store.get_document("userStats", "u1")) == {
        "completed_courses": 2,
        "hours_learned": 1.5,
    }


def test_query_filters_orders_and_limits() -> None:
    store = _store()
    rows = (("a", "u1", 3), ("b", "u2", 1), ("c", "u1", 2), ("d", "u1", 1))
    for doc_id, user, at in rows:
        asyncio.run(store.set_document("certs", doc_id, {"user": user, "at": at}))

    found = asyncio.run(
        store.query("certs", [("user", "==", "u1")], order_by="-at", limit=2)
    )

    assert [s.id for s in found] == ["a", "c"]


def test_query_operators() -> None:
    store = _store()
    asyncio.run(store.set_document("d", "1", {"n": 5, "tags": ["x", "y"], "s": "a"}))
    asyncio.run(store.set_document("d", "2", {"n": 9, "tags": ["z"], "s": "b"}))

    def ids(predicates):
        return sorted(s.id for s in asyncio.run(store.query("d", predicates)))

    assert ids([("n", ">", 5)]) == ["2"]
    assert ids([("n", "<=", 5)]) == ["1"]
    assert ids([("tags", "array_contains", "y")]) == ["1"]
    assert ids([("s", "in", ["a", "b"])]) == ["1", "2"]
    assert ids([("s", "!=", "a")]) == ["2"]
    assert ids([("missing", ">", 0)]) == []


def test_query_rejects_unknown_operator() -> None:
    with pytest.raises(ValueError, match="unsupported"):
        asyncio.run(_store().query("d", [("n", "~", 1)]))


def test_every_write_publishes_a_change() -> None:
    store = _store()
    events: list[ChangeEvent] = []

    async def record(event: ChangeEvent) -> None:
        events.append(event)

    store.on_change("d", None, record)
    asyncio.run(store.create_document("d", "1", {"a": 1}))
    asyncio.run(store.update_document("d", "1", {"a": 2}))
    asyncio.run(store.increment_field("d", "1", "n", 1))
    asyncio.run(store.set_document("other", "1", {"a": 1}))

    assert [(e.doc_id, e.data) for e in events] == [
        ("1", {"a": 1}),
        ("1", {"a": 2}),
        ("1", {"a": 2, "n": 1}),
    ]
    assert {e.origin for e in events} == {"test"}


def test_broken_listener_does_not_block_others() -> None:
    store = _store()
    seen: list[str] = []

    async def broken(event: ChangeEvent) -> None:
        raise RuntimeError("listener bug")

    async def healthy(event: ChangeEvent) -> None:
        seen.append(event.doc_id)

    store.on_change("d", None, broken)
    store.on_change("d", None, healthy)
    asyncio.run(store.set_document("d", "1", {}))

    assert seen == ["1"]


def test_as_origin_shares_data_and_tags_writes() -> None:
    store = _store()
    origins: list[str] = []

    async def record(event: ChangeEvent) -> None:
        origins.append(event.origin)

    store.on_change("d", None, record)
    other = store.as_origin("tab-2")
    asyncio.run(other.set_document("d", "1", {"a": 1}))

    assert asyncio.run(store.get_document("d", "1")) == {"a": 1}
    assert origins == ["tab-2"]
