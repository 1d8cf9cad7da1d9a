from __future__ import annotations

import asyncio

from learnpath.repos.document_store import InMemoryDocumentStore
from learnpath.services.cache import InMemoryCacheService
from learnpath.services.progress_cache import CachedProgress, ProgressCache

ORIGIN = "api-1"


def _cache_and_store():
    store = InMemoryDocumentStore(origin=ORIGIN)
    cache = ProgressCache(InMemoryCacheService(), ttl_seconds=60, origin=ORIGIN)
    cache.attach(store)
    return cache, store


def _sample(progress: int = 33) -> CachedProgress:
    return CachedProgress(
        progress=progress,
        status="active",
        completed_lessons=("L1",),
        total_lessons=3,
        current_lesson="L1",
        next_lesson="L2",
        module_progress={"M1": 50, "M2": 0},
        last_accessed=1700000000,
    )


def test_miss_then_hit() -> None:
    cache, _ = _cache_and_store()
    assert asyncio.run(cache.get("u1", "c1")) is None

    asyncio.run(cache.set("u1", "c1", _sample()))

    assert asyncio.run(cache.get("u1", "c1")) == _sample()


def test_json_keeps_tuple_and_mapping() -> None:
    restored = CachedProgress.from_json(_sample().to_json())
    assert restored.completed_lessons == ("L1",)
    assert restored.module_progress == {"M1": 50, "M2": 0}


def test_invalidate_drops_entry() -> None:
    cache, _ = _cache_and_store()
    asyncio.run(cache.set("u1", "c1", _sample()))

    asyncio.run(cache.invalidate("u1", "c1"))

    assert asyncio.run(cache.get("u1", "c1")) is None


def test_remote_enrollment_change_evicts() -> None:
    cache, store = _cache_and_store()
    asyncio.run(cache.set("u1", "c1", _sample()))

    remote = store.as_origin("api-2")
    asyncio.run(remote.set_document("enrollments", "u1_c1", {"status": "active"}))

    assert asyncio.run(cache.get("u1", "c1")) is None


def test_own_writes_do_not_evict() -> None:
    cache, store = _cache_and_store()
    asyncio.run(cache.set("u1", "c1", _sample()))

    asyncio.run(store.set_document("enrollments", "u1_c1", {"status": "active"}))

    assert asyncio.run(cache.get("u1", "c1")) == _sample()


def test_other_collections_are_ignored() -> None:
    cache, store = _cache_and_store()
    asyncio.run(cache.set("u1", "c1", _sample()))

    remote = store.as_origin("api-2")
    asyncio.run(remote.increment_field("userStats", "u1", "achievements", 1))

    assert asyncio.run(cache.get("u1", "c1")) is not None


def test_unsubscribed_cache_stops_listening() -> None:
    store = InMemoryDocumentStore(origin=ORIGIN)
    cache = ProgressCache(InMemoryCacheService(), ttl_seconds=60, origin=ORIGIN)
    subscription = cache.attach(store)
    asyncio.run(cache.set("u1", "c1", _sample()))

    subscription.unsubscribe()
    asyncio.run(store.as_origin("api-2").set_document("enrollments", "u1_c1", {}))

    assert asyncio.run(cache.get("u1", "c1")) is not None


def test_entry_expires_after_ttl() -> None:
    now = [1000.0]
    cache = ProgressCache(
        InMemoryCacheService(clock=lambda: now[0]), ttl_seconds=60, origin=ORIGIN
    )
    asyncio.run(cache.set("u1", "c1", _sample()))

    now[0] += 59
    assert asyncio.run(cache.get("u1", "c1")) == _sample()
    now[0] += 1
    assert asyncio.run(cache.get("u1", "c1")) is None
