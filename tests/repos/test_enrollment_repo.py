from __future__ import annotations

import asyncio

import pytest

from learnpath.core.errors import EnrollmentAlreadyExists, EnrollmentNotFound
from learnpath.models.enrollment import Enrollment, LessonProgress
from learnpath.repos.document_store import InMemoryDocumentStore
from learnpath.repos.enrollment_repo import COLLECTION, EnrollmentRepo


def _enrollment(user_id: str = "u1", course_id: str = "c1") -> Enrollment:
    return Enrollment.new(
        user_id=user_id,
        course_id=course_id,
        progress=LessonProgress(
            completed_lessons=("L1",),
            progress=33,
            total_lessons=3,
            current_lesson="L1",
            next_lesson="L2",
            module_progress={"M1": 50, "M2": 0},
        ),
    )


def test_create_then_get() -> None:
    repo = EnrollmentRepo(InMemoryDocumentStore(origin="t"))
    asyncio.run(repo.create(_enrollment()))

    stored = asyncio.run(repo.get("u1", "c1"))

    assert stored is not None
    assert stored.status == "active"
    assert stored.progress.completed_lessons == ("L1",)
    assert stored.progress.module_progress == {"M1": 50, "M2": 0}
    assert isinstance(stored.enrolled_at, int)
    assert isinstance(stored.progress.last_accessed, int)


def test_second_create_raises_already_exists() -> None:
    repo = EnrollmentRepo(InMemoryDocumentStore(origin="t"))
    asyncio.run(repo.create(_enrollment()))

    with pytest.raises(EnrollmentAlreadyExists):
        asyncio.run(repo.create(_enrollment()))


def test_patch_replaces_lesson_set_and_keeps_enrolled_at() -> None:
    store = InMemoryDocumentStore(origin="t")
    repo = EnrollmentRepo(store)
    asyncio.run(repo.create(_enrollment()))
    enrolled_at = asyncio.run(repo.get("u1", "c1")).enrolled_at

    asyncio.run(
        repo.patch(
            "u1",
            "c1",
            status="completed",
            progress=LessonProgress(
                completed_lessons=("L1", "L2", "L3"),
                progress=100,
                total_lessons=3,
                current_lesson="L3",
                module_progress={"M1": 100, "M2": 100},
            ),
        )
    )
    stored = asyncio.run(repo.get("u1", "c1"))

    assert stored.status == "completed"
    assert stored.enrolled_at == enrolled_at
    assert stored.progress.completed_lessons == ("L1", "L2", "L3")
    assert stored.progress.next_lesson == ""


def test_patch_missing_enrollment_raises() -> None:
    repo = EnrollmentRepo(InMemoryDocumentStore(origin="t"))

    with pytest.raises(EnrollmentNotFound):
        asyncio.run(repo.patch("u1", "c1", status="completed"))


def test_malformed_document_reads_with_defaults() -> None:
    store = InMemoryDocumentStore(origin="t")
    asyncio.run(
        store.set_document(
            COLLECTION,
            "u1_c1",
            {"status": "weird", "progress": {"completed_lessons": ["a", "a", "b"]}},
        )
    )

    stored = asyncio.run(EnrollmentRepo(store).get("u1", "c1"))

    assert stored.status == "active"
    assert stored.progress.completed_lessons == ("a", "b")
    assert stored.progress.progress == 0


def test_list_for_user_only_returns_their_enrollments() -> None:
    repo = EnrollmentRepo(InMemoryDocumentStore(origin="t"))
    asyncio.run(repo.create(_enrollment("u1", "c1")))
    asyncio.run(repo.create(_enrollment("u1", "c2")))
    asyncio.run(repo.create(_enrollment("u2", "c1")))

    listed = asyncio.run(repo.list_for_user("u1"))

    assert sorted(e.course_id for e in listed) == ["c1", "c2"]
