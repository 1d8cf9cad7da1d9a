"""Aggregate counters for users and instructors.

Counters are never read-modify-written: every change goes through the
store's atomic increment_field, so concurrent completions on different
courses cannot lose each other's updates.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from learnpath.core.errors import DocumentAlreadyExists
from learnpath.models.stats import InstructorStats, UserStats
from learnpath.repos.document_store import DocumentStore

USER_STATS = "userStats"
INSTRUCTOR_STATS = "instructorStats"


def _coerce(cls: type, key_field: str, key: str, data: dict[str, Any]) -> Any:
    values: dict[str, Any] = {key_field: key}
    for f in fields(cls):
        if f.name == key_field or f.name not in data:
            continue
        values[f.name] = float(data[f.name]) if f.type == "float" else int(data[f.name])
    return cls(**values)


class UserStatsRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, user_id: str) -> UserStats:
        """Return the user's counters; all zero when no document exists yet."""
        data = await self._store.get_document(USER_STATS, user_id)
        return _coerce(UserStats, "user_id", user_id, data or {})

    async def ensure(self, user_id: str) -> bool:
        """Create the baseline document if absent. Returns True if it created it."""
        baseline = UserStats(user_id=user_id)
        try:
            await self._store.create_document(
                USER_STATS, user_id, {"user_id": user_id, **baseline.counters()}
            )
        except DocumentAlreadyExists:
            return False
        return True

    async def increment(self, user_id: str, field: str, delta: float = 1) -> None:
        await self._store.increment_field(USER_STATS, user_id, field, delta)


class InstructorStatsRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, instructor_id: str) -> InstructorStats:
        data = await self._store.get_document(INSTRUCTOR_STATS, instructor_id)
        return _coerce(InstructorStats, "instructor_id", instructor_id, data or {})

    async def ensure(self, instructor_id: str) -> bool:
        baseline = InstructorStats(instructor_id=instructor_id)
        try:
            await self._store.create_document(
                INSTRUCTOR_STATS,
                instructor_id,
                {"instructor_id": instructor_id, **baseline.counters()},
            )
        except DocumentAlreadyExists:
            return False
        return True

    async def increment(self, instructor_id: str, field: str, delta: float = 1) -> None:
        await self._store.increment_field(INSTRUCTOR_STATS, instructor_id, field, delta)
