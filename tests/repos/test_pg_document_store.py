from __future__ import annotations

import asyncio

import pytest

from learnpath.core.errors import StoreUnavailable
from learnpath.db.change_feed import ChangeEvent, InMemoryChangeFeed
from learnpath.repos.pg_document_store import PgDocumentStore, _equality_filter


def test_equality_filter_keeps_only_equality_predicates() -> None:
    predicates = [
        ("user_id", "==", "u1"),
        ("progress.progress", ">=", 50),
        ("metadata.grade", "==", 100),
        ("status", "in", ["active"]),
    ]

    assert _equality_filter(predicates) == {
        "user_id": "u1",
        "metadata": {"grade": 100},
    }


def test_equality_filter_empty_without_equality() -> None:
    assert _equality_filter([("n", ">", 1)]) == {}


class _RefusingSession:
    async def __aenter__(self):
        raise OSError("connection refused")

    async def __aexit__(self, *exc_info) -> None:
        return None


def test_connection_failure_maps_to_store_unavailable() -> None:
    store = PgDocumentStore(
        lambda: _RefusingSession(), feed=InMemoryChangeFeed(), origin="pg-test"
    )

    with pytest.raises(StoreUnavailable, match="get failed"):
        asyncio.run(store.get_document("courses", "c1"))


def test_query_validates_operators_before_connecting() -> None:
    store = PgDocumentStore(
        lambda: _RefusingSession(), feed=InMemoryChangeFeed(), origin="pg-test"
    )

    with pytest.raises(ValueError):
        asyncio.run(store.query("courses", [("price", "like", 1)]))


class _DisconnectedFeed(InMemoryChangeFeed):
    async def publish(self, event: ChangeEvent) -> None:
        raise ConnectionError("redis went away")


def test_feed_failure_after_commit_is_logged_not_raised(
    caplog: pytest.LogCaptureFixture,
) -> None:
    store = PgDocumentStore(
        lambda: _RefusingSession(), feed=_DisconnectedFeed(), origin="pg-test"
    )

    with caplog.at_level("ERROR", logger="learnpath.repos.pg_document_store"):
        asyncio.run(store._publish("enrollments", "u1_c1", {"status": "completed"}))

    assert any("enrollments/u1_c1" in r.getMessage() for r in caplog.records)
