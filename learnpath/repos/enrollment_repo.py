"""Enrollment record store adapter.

One document per (user, course) in the `enrollments` collection, keyed
`{user_id}_{course_id}`:

    {
      "user_id": "...", "course_id": "...",
      "status": "active" | "completed",
      "enrolled_at": <epoch s>,
      "progress": {
        "completed_lessons": [...], "progress": 0-100, "total_lessons": n,
        "current_lesson": "...", "next_lesson": "...",
        "module_progress": {module_id: 0-100}, "last_accessed": <epoch s>
      }
    }

patch() is a field-level merge: only the named fields are written, and
`completed_lessons` is always the caller's full replacement set (never an
append), so replaying the same write cannot double count.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from learnpath.core.errors import (
    DocumentAlreadyExists,
    DocumentNotFound,
    EnrollmentAlreadyExists,
    EnrollmentNotFound,
)
from learnpath.models.enrollment import (
    Enrollment,
    EnrollmentState,
    LessonProgress,
    enrollment_key,
)
from learnpath.repos.document_store import SERVER_TIMESTAMP, Document, DocumentStore

COLLECTION = "enrollments"


class EnrollmentRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, user_id: str, course_id: str) -> Enrollment | None:
        data = await self._store.get_document(
            COLLECTION, enrollment_key(user_id, course_id)
        )
        if data is None:
            return None
        return doc_to_enrollment(user_id, course_id, data)

    async def create(self, enrollment: Enrollment) -> None:
        """Create the enrollment, failing if a concurrent create got there first."""
        doc = {
            "user_id": enrollment.user_id,
            "course_id": enrollment.course_id,
            "status": enrollment.status,
            "enrolled_at": SERVER_TIMESTAMP,
            "progress": _progress_to_doc(enrollment.progress),
        }
        try:
            await self._store.create_document(COLLECTION, enrollment.key, doc)
        except DocumentAlreadyExists:
            raise EnrollmentAlreadyExists(
                enrollment.user_id, enrollment.course_id
            ) from None

    async def patch(
        self,
        user_id: str,
        course_id: str,
        *,
        status: EnrollmentState | None = None,
        progress: LessonProgress | None = None,
    ) -> None:
        fields: dict[str, Any] = {}
        if status is not None:
            fields["status"] = status
        if progress is not None:
            for name, value in _progress_to_doc(progress).items():
                fields[f"progress.{name}"] = value
        fields["progress.last_accessed"] = SERVER_TIMESTAMP

        try:
            await self._store.update_document(
                COLLECTION, enrollment_key(user_id, course_id), fields
            )
        except DocumentNotFound:
            raise EnrollmentNotFound(user_id, course_id) from None

    async def list_for_user(self, user_id: str) -> list[Enrollment]:
        snapshots = await self._store.query(
            COLLECTION, [("user_id", "==", user_id)], order_by="-enrolled_at"
        )
        return [
            doc_to_enrollment(user_id, s.data.get("course_id") or "", s.data)
            for s in snapshots
        ]


def _progress_to_doc(progress: LessonProgress) -> Document:
    return {
        "completed_lessons": list(progress.completed_lessons),
        "progress": progress.progress,
        "total_lessons": progress.total_lessons,
        "current_lesson": progress.current_lesson,
        "next_lesson": progress.next_lesson,
        "module_progress": dict(progress.module_progress),
        "last_accessed": SERVER_TIMESTAMP,
    }


def doc_to_enrollment(
    user_id: str, course_id: str, data: Mapping[str, Any]
) -> Enrollment:
    raw = data.get("progress")
    progress = raw if isinstance(raw, Mapping) else {}
    lessons = progress.get("completed_lessons") or ()
    status: EnrollmentState = (
        "completed" if data.get("status") == "completed" else "active"
    )
    return Enrollment(
        user_id=user_id,
        course_id=course_id,
        status=status,
        enrolled_at=data.get("enrolled_at"),
        progress=LessonProgress(
            completed_lessons=tuple(dict.fromkeys(lessons)),
            progress=int(progress.get("progress") or 0),
            total_lessons=int(progress.get("total_lessons") or 0),
            current_lesson=progress.get("current_lesson") or "",
            next_lesson=progress.get("next_lesson") or "",
            module_progress=dict(progress.get("module_progress") or {}),
            last_accessed=progress.get("last_accessed"),
        ),
    )
