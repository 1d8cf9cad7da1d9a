"""Progress update orchestrator.

record_lesson_completion is the single write path for enrollment
progress.  For each "lesson completed/uncompleted" event it does one
read, computes the new state from the course tree and one write:

  course ──► lesson belongs? ──► enrollment
                                   │ absent  → create (lost race → re-read)
                                   │ present → patch the whole progress block
                                   ▼
                          cache overwritten with what was written
                                   ▼
                 active → completed in this call?  → completion side effects

Status only ever moves active → completed.  Unchecking a lesson on a
completed course lowers the percentage but leaves the status and the
certificate alone.

Side effects (enrollment counters, then completion effects) run after the
write.  If any of them fails the caller gets CompletionSideEffectsFailed
with the persisted update, and queue_side_effects_retry hands the rest to
the worker.

Two concurrent events on the same enrollment are not serialised: both
read the same snapshot and the second patch wins.  That lost update is
accepted; nothing re-sends the lesson.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace

from learnpath.core.errors import (
    CompletionSideEffectsFailed,
    EnrollmentAlreadyExists,
    EnrollmentNotFound,
    LessonNotFound,
)
from learnpath.core.metrics import (
    COURSE_COMPLETIONS,
    ENROLLMENTS_CREATED,
    LESSON_EVENTS,
    SIDE_EFFECT_FAILURES,
)
from learnpath.models.achievement import UnlockedAchievement
from learnpath.models.certificate import Certificate
from learnpath.models.course import Course, LessonRef
from learnpath.models.enrollment import (
    AccessStatus,
    Enrollment,
    EnrollmentState,
    EnrollmentStatus,
    LessonProgress,
)
from learnpath.models.stats import UserStats
from learnpath.repos.achievement_repo import AchievementRepo
from learnpath.repos.certificate_repo import CertificateRepo
from learnpath.repos.course_repo import CourseRepo
from learnpath.repos.document_store import now_epoch
from learnpath.repos.enrollment_repo import EnrollmentRepo
from learnpath.repos.stats_repo import UserStatsRepo
from learnpath.repos.store import document_store
from learnpath.services import course_index
from learnpath.services.completion_service import (
    CompletionResult,
    CompletionService,
    completion_service,
)
from learnpath.services.progress_cache import (
    CachedProgress,
    ProgressCache,
    progress_cache,
)
from learnpath.services.progress_calculator import (
    is_complete,
    module_progress,
    percentage,
)
from learnpath.services.task_queue import COMPLETION_SIDE_EFFECTS, Task, task_queue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """What a write left behind.

    `previous_status` is None when this call created the enrollment.
    """

    enrollment: Enrollment
    previous_status: EnrollmentState | None = None
    created: bool = False

    @property
    def became_completed(self) -> bool:
        return self.previous_status != "completed" and self.enrollment.is_completed


@dataclass(frozen=True, slots=True)
class Dashboard:
    stats: UserStats
    enrollments: tuple[Enrollment, ...]
    certificates: tuple[Certificate, ...]
    achievements: tuple[UnlockedAchievement, ...]


def compute_progress(
    course: Course, completed: Iterable[str], current_lesson: str
) -> LessonProgress:
    """Progress block for `completed`, with ids no longer in the course dropped."""
    in_course = set(course_index.flatten(course))
    kept = tuple(lid for lid in dict.fromkeys(completed) if lid in in_course)
    total = course_index.total_lessons(course)
    return LessonProgress(
        completed_lessons=kept,
        progress=percentage(len(kept), total),
        total_lessons=total,
        current_lesson=current_lesson,
        next_lesson=course_index.next_of(course, current_lesson) or "",
        module_progress=module_progress(course, kept),
        last_accessed=now_epoch(),
    )


class ProgressService:
    def __init__(
        self,
        *,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        certificates: CertificateRepo,
        user_stats: UserStatsRepo,
        achievements: AchievementRepo,
        completion: CompletionService,
        cache: ProgressCache,
    ) -> None:
        self._courses = courses
        self._enrollments = enrollments
        self._certificates = certificates
        self._user_stats = user_stats
        self._achievements = achievements
        self._completion = completion
        self._cache = cache

    # -- writes --------------------------------------------------------------

    async def record_lesson_completion(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        completed: bool = True,
    ) -> ProgressUpdate:
        """Apply one lesson event and fire completion side effects on the transition.

        Raises CourseNotFound / LessonNotFound before any write.  If the
        side effects fail after the enrollment was written, raises
        CompletionSideEffectsFailed carrying the persisted update.
        """
        course = await self._courses.require(course_id)
        if not course_index.contains(course, lesson_id):
            raise LessonNotFound(course_id, lesson_id)
        LESSON_EVENTS.labels(completed=str(completed).lower()).inc()

        update: ProgressUpdate | None = None
        current = await self._enrollments.get(user_id, course_id)
        if current is None:
            update = await self._create_from_event(
                course, user_id, lesson_id, completed
            )
            if update is None:
                current = await self._enrollments.get(user_id, course_id)
                if current is None:
                    raise EnrollmentNotFound(user_id, course_id)
        if update is None:
            update = await self._apply_event(course, current, lesson_id, completed)

        await self._cache.set(
            user_id, course_id, CachedProgress.from_enrollment(update.enrollment)
        )
        logger.info(
            "Lesson event user=%s course=%s lesson=%s completed=%s "
            "progress=%d status=%s",
            user_id,
            course_id,
            lesson_id,
            completed,
            update.enrollment.progress.progress,
            update.enrollment.status,
        )

        if update.created:
            ENROLLMENTS_CREATED.labels(source="lesson_event").inc()
        if update.became_completed:
            COURSE_COMPLETIONS.inc()
        await self._run_side_effects(course, update)
        return update

    async def _run_side_effects(self, course: Course, update: ProgressUpdate) -> None:
        """Enrollment counters and completion effects owed by `update`."""
        user_id = update.enrollment.user_id
        try:
            if update.created:
                await self._completion.on_enrolled(user_id, course)
            if update.became_completed:
                await self._completion.on_course_completed(
                    user_id, course.id, course=course
                )
        except Exception as exc:
            SIDE_EFFECT_FAILURES.inc()
            logger.exception(
                "Side effects failed user=%s course=%s created=%s completed=%s",
                user_id,
                course.id,
                update.created,
                update.became_completed,
            )
            raise CompletionSideEffectsFailed(update, exc) from exc

    async def _create_from_event(
        self, course: Course, user_id: str, lesson_id: str, completed: bool
    ) -> ProgressUpdate | None:
        """First event for this enrollment. None if a concurrent create won."""
        progress = compute_progress(course, [lesson_id] if completed else [], lesson_id)
        enrollment = Enrollment.new(
            user_id=user_id,
            course_id=course.id,
            progress=progress,
            status="completed" if is_complete(progress.progress) else "active",
        )
        try:
            await self._enrollments.create(enrollment)
        except EnrollmentAlreadyExists:
            logger.info(
                "Enrollment user=%s course=%s created concurrently; re-reading",
                user_id,
                course.id,
            )
            return None
        return ProgressUpdate(
            enrollment=replace(enrollment, enrolled_at=progress.last_accessed),
            previous_status=None,
            created=True,
        )

    async def _apply_event(
        self, course: Course, current: Enrollment, lesson_id: str, completed: bool
    ) -> ProgressUpdate:
        done = list(current.progress.completed_lessons)
        if completed and lesson_id not in done:
            done.append(lesson_id)
        elif not completed:
            done = [d for d in done if d != lesson_id]

        progress = compute_progress(course, done, lesson_id)
        status: EnrollmentState = (
            "completed" if is_complete(progress.progress) else current.status
        )
        await self._enrollments.patch(
            current.user_id, current.course_id, status=status, progress=progress
        )
        return ProgressUpdate(
            enrollment=replace(current, status=status, progress=progress),
            previous_status=current.status,
        )

    async def enroll(self, user_id: str, course_id: str) -> ProgressUpdate:
        """Enroll explicitly. Enrolling twice returns the existing enrollment.

        Raises CompletionSideEffectsFailed when the enrollment was created
        but its counters were not.
        """
        course = await self._courses.require(course_id)
        return await self._enroll(course, user_id, source="enroll")

    async def _enroll(
        self, course: Course, user_id: str, *, source: str
    ) -> ProgressUpdate:
        existing = await self._enrollments.get(user_id, course.id)
        if existing is not None:
            return ProgressUpdate(enrollment=existing, previous_status=existing.status)

        first = course_index.first_lesson(course)
        progress = compute_progress(course, [], first.lesson_id if first else "")
        enrollment = Enrollment.new(
            user_id=user_id, course_id=course.id, progress=progress
        )
        try:
            await self._enrollments.create(enrollment)
        except EnrollmentAlreadyExists:
            existing = await self._enrollments.get(user_id, course.id)
            if existing is None:
                raise EnrollmentNotFound(user_id, course.id) from None
            return ProgressUpdate(enrollment=existing, previous_status=existing.status)

        enrollment = replace(enrollment, enrolled_at=progress.last_accessed)
        await self._cache.set(
            user_id, course.id, CachedProgress.from_enrollment(enrollment)
        )
        ENROLLMENTS_CREATED.labels(source=source).inc()
        logger.info("Enrolled user=%s course=%s source=%s", user_id, course.id, source)
        update = ProgressUpdate(enrollment=enrollment, created=True)
        await self._run_side_effects(course, update)
        return update

    async def replay_completion(
        self, user_id: str, course_id: str
    ) -> CompletionResult | None:
        """Finish whatever side effects the enrollment is still owed.

        Enrollment counters are re-applied where missing.  Completion
        effects run only for a completed enrollment; None otherwise.
        """
        enrollment = await self._enrollments.get(user_id, course_id)
        if enrollment is None:
            raise EnrollmentNotFound(user_id, course_id)
        course = await self._courses.require(course_id)
        await self._completion.on_enrolled(user_id, course)
        if not enrollment.is_completed:
            logger.info(
                "Replay for active enrollment user=%s course=%s: counters only",
                user_id,
                course_id,
            )
            return None
        return await self._completion.on_course_completed(
            user_id, course_id, course=course
        )

    # -- reads ---------------------------------------------------------------

    async def get_progress(self, user_id: str, course_id: str) -> CachedProgress | None:
        cached = await self._cache.get(user_id, course_id)
        if cached is not None:
            return cached
        enrollment = await self._enrollments.get(user_id, course_id)
        if enrollment is None:
            return None
        cached = CachedProgress.from_enrollment(enrollment)
        await self._cache.set(user_id, course_id, cached)
        return cached

    async def get_course_progress(self, user_id: str, course_id: str) -> int:
        cached = await self.get_progress(user_id, course_id)
        return cached.progress if cached is not None else 0

    async def get_enrollment_status(
        self, user_id: str, course_id: str
    ) -> EnrollmentStatus:
        cached = await self.get_progress(user_id, course_id)
        if cached is None:
            return EnrollmentStatus()
        certificate = await self._certificates.get(user_id, course_id)
        return EnrollmentStatus(
            enrolled=True,
            progress=cached.progress,
            completed=cached.status == "completed",
            current_lesson=cached.current_lesson or None,
            next_lesson=cached.next_lesson or None,
            certificate_issued=certificate is not None,
        )

    async def check_access_status(self, user_id: str, course_id: str) -> AccessStatus:
        """Whether `user_id` may open the course.

        The instructor always may.  A free course enrolls the user on first access.
        """
        course = await self._courses.require(course_id)
        status = await self.get_enrollment_status(user_id, course_id)
        if course.instructor_id and course.instructor_id == user_id:
            return AccessStatus(
                has_access=True, enrollment_status=status, is_owner=True
            )
        if status.enrolled:
            return AccessStatus(has_access=True, enrollment_status=status)
        if course.is_free:
            try:
                await self._enroll(course, user_id, source="free_access")
            except CompletionSideEffectsFailed:
                await queue_side_effects_retry(user_id, course_id)
            return AccessStatus(
                has_access=True,
                enrollment_status=await self.get_enrollment_status(user_id, course_id),
            )
        return AccessStatus(has_access=False, enrollment_status=status)

    async def resume_lesson(self, user_id: str, course_id: str) -> LessonRef | None:
        course = await self._courses.require(course_id)
        cached = await self.get_progress(user_id, course_id)
        if cached is not None:
            for lesson_id in (cached.current_lesson, cached.next_lesson):
                ref = course_index.locate(course, lesson_id) if lesson_id else None
                if ref is not None:
                    return ref
        return course_index.first_lesson(course)

    async def get_course_completion_rate(self, course_id: str) -> float:
        course = await self._courses.require(course_id)
        if course.students <= 0:
            return 0.0
        return course.completions / course.students * 100

    async def get_dashboard(self, user_id: str) -> Dashboard:
        return Dashboard(
            stats=await self._user_stats.get(user_id),
            enrollments=tuple(await self._enrollments.list_for_user(user_id)),
            certificates=tuple(await self._certificates.list_for_user(user_id)),
            achievements=tuple(await self._achievements.list_for_user(user_id)),
        )


async def queue_side_effects_retry(user_id: str, course_id: str) -> Task:
    """Hand unfinished side effects of a persisted write to the worker."""
    task = await task_queue.enqueue(
        COMPLETION_SIDE_EFFECTS, {"user_id": user_id, "course_id": course_id}
    )
    logger.warning(
        "Queued side-effect retry task=%s user=%s course=%s",
        task.id,
        user_id,
        course_id,
        extra={"user_id": user_id, "course_id": course_id},
    )
    return task


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

progress_service = ProgressService(
    courses=CourseRepo(document_store),
    enrollments=EnrollmentRepo(document_store),
    certificates=CertificateRepo(document_store),
    user_stats=UserStatsRepo(document_store),
    achievements=AchievementRepo(document_store),
    completion=completion_service,
    cache=progress_cache,
)
progress_cache.attach(document_store)
