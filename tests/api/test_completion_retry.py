"""A completion whose side effects fail is still reported, and retried.

The lesson write is authoritative: the POST answers 200 with the
completed progress and `side_effects_pending`, and a task lands on the
completion_side_effects queue for the worker.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from learnpath import worker
from learnpath.repos.stats_repo import UserStatsRepo
from learnpath.repos.store import document_store
from learnpath.services.progress_service import progress_service
from learnpath.services.task_queue import COMPLETION_SIDE_EFFECTS, task_queue
from tests.conftest import auth, fail_increment_once, make_course, seed_course


async def _broken_achievements(user_id: str) -> tuple[str, ...]:
    raise RuntimeError("achievement store down")


async def _broken_certificate(user_id: str, course) -> bool:
    raise RuntimeError("certificate store down")


def _finish_course(client: TestClient):
    for lesson in ("L1", "L2"):
        client.post(f"/v1/progress/c1/lessons/{lesson}", json={}, headers=auth("amy"))
    return client.post("/v1/progress/c1/lessons/L3", json={}, headers=auth("amy"))


def test_failed_achievements_queue_retry(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_course(make_course())
    monkeypatch.setattr(
        progress_service._completion, "evaluate_achievements", _broken_achievements
    )

    resp = _finish_course(client)

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "completed"
    assert data["became_completed"] is True
    assert data["side_effects_pending"] is True

    task = asyncio.run(task_queue.dequeue(COMPLETION_SIDE_EFFECTS))
    assert task is not None
    assert task.payload == {"user_id": "amy", "course_id": "c1"}


def test_failed_certificate_queue_retry(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_course(make_course())
    monkeypatch.setattr(
        progress_service._completion, "issue_certificate", _broken_certificate
    )

    resp = _finish_course(client)

    assert resp.json()["side_effects_pending"] is True
    task = asyncio.run(task_queue.dequeue(COMPLETION_SIDE_EFFECTS))
    assert task.payload == {"user_id": "amy", "course_id": "c1"}


def test_worker_finishes_queued_side_effects(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_course(make_course())
    monkeypatch.setattr(
        progress_service._completion, "evaluate_achievements", _broken_achievements
    )
    _finish_course(client)
    monkeypatch.undo()

    handled = asyncio.run(worker.run_once(timeout=0))

    assert handled == 1
    stats = asyncio.run(UserStatsRepo(document_store).get("amy"))
    assert stats.completed_courses == 1
    assert stats.certificates == 1
    assert stats.achievements == 1
    assert asyncio.run(task_queue.queue_length(COMPLETION_SIDE_EFFECTS)) == 0


def test_worker_does_not_double_count_partial_stats(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_course(make_course())
    fail_increment_once(
        monkeypatch, progress_service._completion._user_stats, "hours_learned"
    )

    resp = _finish_course(client)
    assert resp.json()["side_effects_pending"] is True
    asyncio.run(worker.run_once(timeout=0))

    stats = asyncio.run(UserStatsRepo(document_store).get("amy"))
    assert stats.completed_courses == 1
    assert stats.hours_learned == 2.0
    assert stats.courses_enrolled == 1
    assert stats.certificates == 1
