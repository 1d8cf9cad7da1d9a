from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from learnpath.core.errors import StoreUnavailable
from learnpath.main import app
from learnpath.models.course import Course, Lesson, Module
from learnpath.repos.achievement_repo import AchievementRepo
from learnpath.repos.certificate_repo import CertificateRepo
from learnpath.repos.course_repo import CourseRepo
from learnpath.repos.document_store import InMemoryDocumentStore
from learnpath.repos.enrollment_repo import EnrollmentRepo
from learnpath.repos.ledger_repo import CounterLedger
from learnpath.repos.stats_repo import InstructorStatsRepo, UserStatsRepo
from learnpath.repos.store import document_store
from learnpath.services import token_service
from learnpath.services.cache import InMemoryCacheService, cache_service
from learnpath.services.completion_service import CompletionService
from learnpath.services.progress_cache import ProgressCache
from learnpath.services.progress_service import ProgressService
from learnpath.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import learnpath` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ORIGIN = "api-1"


@pytest.fixture(autouse=True)
def reset_document_store() -> None:
    """Clear the process-wide in-memory store between tests."""
    if hasattr(document_store, "clear"):
        document_store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(username: str = "test-user", roles: list[str] | None = None) -> dict:
    return {"Authorization": f"Bearer {mint_token(username, roles)}"}


@pytest.fixture
def token() -> str:
    """Token with default role (user)."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Course helpers
# ---------------------------------------------------------------------------


def make_course(
    course_id: str = "c1",
    *,
    price: float = 49.0,
    instructor_id: str = "inst-1",
    modules: tuple[Module, ...] | None = None,
) -> Course:
    """Two modules: M1 = [L1 (30 min), L2 (30 min)], M2 = [L3 (60 min)]."""
    if modules is None:
        modules = (
            Module(
                id="M1",
                title="Basics",
                lessons=(
                    Lesson(id="L1", title="Intro", type="video", duration=30),
                    Lesson(id="L2", title="Setup", type="text", duration=30),
                ),
            ),
            Module(
                id="M2",
                title="Practice",
                lessons=(Lesson(id="L3", title="Project", type="project", duration=60),),
            ),
        )
    return Course(
        id=course_id,
        title=f"Course {course_id}",
        instructor_id=instructor_id,
        price=price,
        skills=("python", "testing"),
        modules=modules,
    )


def seed_course(course: Course) -> Course:
    """Store `course` in the process-wide store used by the API."""
    asyncio.run(CourseRepo(document_store).add(course))
    return course


# ---------------------------------------------------------------------------
# Service harness on a private store
# ---------------------------------------------------------------------------


@dataclass
class Harness:
    store: InMemoryDocumentStore
    cache: ProgressCache
    courses: CourseRepo
    enrollments: EnrollmentRepo
    certificates: CertificateRepo
    user_stats: UserStatsRepo
    instructor_stats: InstructorStatsRepo
    achievements: AchievementRepo
    ledger: CounterLedger
    completion: CompletionService
    progress: ProgressService


def build_harness(store: InMemoryDocumentStore | None = None) -> Harness:
    store = store or InMemoryDocumentStore(origin=ORIGIN)
    cache = ProgressCache(InMemoryCacheService(), ttl_seconds=60, origin=store.origin)
    cache.attach(store)
    courses = CourseRepo(store)
    certificates = CertificateRepo(store)
    user_stats = UserStatsRepo(store)
    instructor_stats = InstructorStatsRepo(store)
    achievements = AchievementRepo(store)
    ledger = CounterLedger(store)
    completion = CompletionService(
        courses=courses,
        certificates=certificates,
        user_stats=user_stats,
        instructor_stats=instructor_stats,
        achievements=achievements,
        ledger=ledger,
    )
    enrollments = EnrollmentRepo(store)
    progress = ProgressService(
        courses=courses,
        enrollments=enrollments,
        certificates=certificates,
        user_stats=user_stats,
        achievements=achievements,
        completion=completion,
        cache=cache,
    )
    return Harness(
        store=store,
        cache=cache,
        courses=courses,
        enrollments=enrollments,
        certificates=certificates,
        user_stats=user_stats,
        instructor_stats=instructor_stats,
        achievements=achievements,
        ledger=ledger,
        completion=completion,
        progress=progress,
    )


@pytest.fixture
def harness() -> Harness:
    h = build_harness()
    asyncio.run(h.courses.add(make_course()))
    return h


def fail_increment_once(
    monkeypatch: pytest.MonkeyPatch, repo, counter: str
) -> None:
    """Make the next increment of `counter` on `repo` raise StoreUnavailable."""
    original = repo.increment
    pending = [counter]

    async def flaky(key: str, field: str, delta: float = 1) -> None:
        if field in pending:
            pending.remove(field)
            raise StoreUnavailable(f"increment {field} failed")
        await original(key, field, delta)

    monkeypatch.setattr(repo, "increment", flaky)
