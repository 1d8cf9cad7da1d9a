"""Read-through cache of per-enrollment progress.

Keyed by the enrollment key `{user_id}_{course_id}`.

  read   → cache hit: return without touching the store
         → miss: caller reads the store and populates the entry
  write  → the orchestrator overwrites the entry with what it just wrote,
           so this process never serves anything older than its own write
  remote → a change event from another origin (tab, API instance) deletes
           the entry; the next read goes to the store

Echoes of this process's own writes are ignored: they arrive after the
entry was overwritten with the same data and would only cause a miss.
Until a remote event arrives, an entry may lag behind another writer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field

from learnpath.core.config import SETTINGS
from learnpath.core.metrics import CACHE_OPERATIONS
from learnpath.db.change_feed import ChangeEvent, Subscription
from learnpath.models.enrollment import Enrollment, EnrollmentState, enrollment_key
from learnpath.repos.document_store import DocumentStore
from learnpath.repos.enrollment_repo import COLLECTION as ENROLLMENTS
from learnpath.services.cache import CacheService, cache_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CachedProgress:
    progress: int
    status: EnrollmentState
    completed_lessons: tuple[str, ...] = ()
    total_lessons: int = 0
    current_lesson: str = ""
    next_lesson: str = ""
    module_progress: dict[str, int] = field(default_factory=dict)
    last_accessed: int | None = None

    @staticmethod
    def from_enrollment(enrollment: Enrollment) -> CachedProgress:
        p = enrollment.progress
        return CachedProgress(
            progress=p.progress,
            status=enrollment.status,
            completed_lessons=p.completed_lessons,
            total_lessons=p.total_lessons,
            current_lesson=p.current_lesson,
            next_lesson=p.next_lesson,
            module_progress=dict(p.module_progress),
            last_accessed=p.last_accessed,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str) -> CachedProgress:
        data = json.loads(raw)
        data["completed_lessons"] = tuple(data.get("completed_lessons") or ())
        return CachedProgress(**data)


class ProgressCache:
    _PREFIX = "progress:"

    def __init__(
        self,
        backend: CacheService,
        *,
        ttl_seconds: int,
        origin: str,
    ) -> None:
        self._backend = backend
        self._ttl = ttl_seconds
        self._origin = origin

    def _key(self, enrollment_id: str) -> str:
        return f"{self._PREFIX}{enrollment_id}"

    async def get(self, user_id: str, course_id: str) -> CachedProgress | None:
        raw = await self._backend.get(self._key(enrollment_key(user_id, course_id)))
        if raw is None:
            CACHE_OPERATIONS.labels(operation="miss").inc()
            return None
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return CachedProgress.from_json(raw)

    async def set(self, user_id: str, course_id: str, data: CachedProgress) -> None:
        await self._backend.set(
            self._key(enrollment_key(user_id, course_id)), data.to_json(), self._ttl
        )

    async def invalidate(self, user_id: str, course_id: str) -> None:
        await self._drop(enrollment_key(user_id, course_id))

    async def _drop(self, enrollment_id: str) -> None:
        await self._backend.delete(self._key(enrollment_id))
        CACHE_OPERATIONS.labels(operation="invalidate").inc()

    def attach(self, store: DocumentStore) -> Subscription:
        """Subscribe to remote enrollment changes on `store`."""
        return store.on_change(ENROLLMENTS, self._is_remote, self._on_remote_change)

    def _is_remote(self, event: ChangeEvent) -> bool:
        return event.origin != self._origin

    async def _on_remote_change(self, event: ChangeEvent) -> None:
        logger.debug(
            "Remote change on enrollment %s from %s", event.doc_id, event.origin
        )
        await self._drop(event.doc_id)


progress_cache = ProgressCache(
    cache_service,
    ttl_seconds=SETTINGS.progress_cache_ttl,
    origin=SETTINGS.instance_id,
)
