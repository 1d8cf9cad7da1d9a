from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

from learnpath.core.errors import CourseNotFound
from learnpath.models.course import Course, Lesson, Module
from learnpath.repos.document_store import Document, DocumentStore

COLLECTION = "courses"


class CourseRepo:
    """Read access to authored courses plus their aggregate counters.

    Authoring is another subsystem's job; `add` exists for seeding and tests.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, course_id: str) -> Course | None:
        data = await self._store.get_document(COLLECTION, course_id)
        if data is None:
            return None
        return _doc_to_course(course_id, data)

    async def require(self, course_id: str) -> Course:
        course = await self.get(course_id)
        if course is None:
            raise CourseNotFound(course_id)
        return course

    async def add(self, course: Course) -> None:
        await self._store.set_document(COLLECTION, course.id, course_to_doc(course))

    async def increment(self, course_id: str, field: str, delta: int = 1) -> None:
        await self._store.increment_field(COLLECTION, course_id, field, delta)


def course_to_doc(course: Course) -> Document:
    data = asdict(course)
    data.pop("id")
    data["skills"] = list(course.skills)
    data["modules"] = [
        {
            "id": m.id,
            "title": m.title,
            "lessons": [asdict(lesson) for lesson in m.lessons],
        }
        for m in course.modules
    ]
    return data


def _doc_to_lesson(data: Mapping[str, Any]) -> Lesson:
    return Lesson(
        id=str(data["id"]),
        title=data.get("title") or "",
        type=data.get("type") or "text",
        duration=int(data.get("duration") or 0),
        content=dict(data.get("content") or {}),
    )


def _doc_to_module(data: Mapping[str, Any]) -> Module:
    return Module(
        id=str(data["id"]),
        title=data.get("title") or "",
        lessons=tuple(_doc_to_lesson(lesson) for lesson in data.get("lessons") or ()),
    )


def _doc_to_course(course_id: str, data: Mapping[str, Any]) -> Course:
    return Course(
        id=course_id,
        title=data.get("title") or "",
        instructor_id=data.get("instructor_id") or "",
        price=float(data.get("price") or 0),
        skills=tuple(data.get("skills") or ()),
        modules=tuple(_doc_to_module(m) for m in data.get("modules") or ()),
        students=int(data.get("students") or 0),
        completions=int(data.get("completions") or 0),
    )
