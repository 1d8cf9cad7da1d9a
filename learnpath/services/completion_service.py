"""Side effects of finishing (and starting) a course.

on_course_completed runs three steps in order and stops at the first
failure:

  1. certificate     created once per (user, course); the deterministic
                     id makes a concurrent duplicate lose the create
  2. stats           completed_courses, hours_learned and the course and
                     instructor completion counters, via atomic increments
  3. achievements    every rule whose predicate now holds and that the
                     user has not unlocked yet

Every counter increment goes through the CounterLedger, so running the
whole chain again after a failure finishes what is missing and counts
nothing twice.  on_enrolled does the same for the enrollment counters.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from learnpath.core.errors import CompletionStepFailed
from learnpath.core.metrics import ACHIEVEMENTS_GRANTED, CERTIFICATES_ISSUED
from learnpath.models.achievement import AchievementRule, UnlockedAchievement
from learnpath.models.certificate import Certificate
from learnpath.models.course import Course
from learnpath.repos.achievement_repo import AchievementRepo
from learnpath.repos.certificate_repo import CertificateRepo
from learnpath.repos.course_repo import CourseRepo
from learnpath.repos.ledger_repo import CounterLedger, ledger_key
from learnpath.repos.stats_repo import InstructorStatsRepo, UserStatsRepo
from learnpath.repos.store import document_store
from learnpath.services import course_index
from learnpath.services.achievements import ACHIEVEMENT_RULES

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionResult:
    certificate_issued: bool
    achievements_granted: tuple[str, ...] = ()


class CompletionService:
    def __init__(
        self,
        *,
        courses: CourseRepo,
        certificates: CertificateRepo,
        user_stats: UserStatsRepo,
        instructor_stats: InstructorStatsRepo,
        achievements: AchievementRepo,
        ledger: CounterLedger,
        rules: Sequence[AchievementRule] = ACHIEVEMENT_RULES,
    ) -> None:
        self._courses = courses
        self._certificates = certificates
        self._user_stats = user_stats
        self._instructor_stats = instructor_stats
        self._achievements = achievements
        self._ledger = ledger
        self._rules = tuple(rules)

    async def _count_once(
        self,
        key: str,
        applied: set[str],
        name: str,
        increment: Callable[[], Awaitable[None]],
    ) -> None:
        if name in applied:
            return
        await increment()
        await self._ledger.mark(key, name)
        applied.add(name)

    async def on_course_completed(
        self,
        user_id: str,
        course_id: str,
        *,
        course: Course | None = None,
    ) -> CompletionResult:
        if course is None:
            course = await self._courses.require(course_id)

        try:
            issued = await self.issue_certificate(user_id, course)
        except Exception as exc:
            raise CompletionStepFailed("certificate") from exc

        try:
            await self._record_completion_stats(user_id, course)
        except Exception as exc:
            raise CompletionStepFailed("stats") from exc

        try:
            granted = await self.evaluate_achievements(user_id)
        except Exception as exc:
            raise CompletionStepFailed("achievements") from exc

        logger.info(
            "Course completed user=%s course=%s certificate_issued=%s achievements=%s",
            user_id,
            course.id,
            issued,
            ",".join(granted) or "-",
        )
        return CompletionResult(certificate_issued=issued, achievements_granted=granted)

    async def issue_certificate(self, user_id: str, course: Course) -> bool:
        """Create the certificate unless one exists. True if this call created it.

        A certificate left uncounted by an earlier failure is counted here.
        """
        created = False
        if await self._certificates.get(user_id, course.id) is None:
            created = await self._certificates.create(
                Certificate.for_course(user_id=user_id, course=course)
            )
            if not created:
                logger.info(
                    "Certificate for user=%s course=%s issued concurrently",
                    user_id,
                    course.id,
                )
                return False

        key = ledger_key("completion", user_id, course.id)
        await self._user_stats.ensure(user_id)
        await self._count_once(
            key,
            await self._ledger.applied(key),
            "certificates",
            lambda: self._user_stats.increment(user_id, "certificates", 1),
        )
        if created:
            CERTIFICATES_ISSUED.inc()
        return created

    async def _record_completion_stats(self, user_id: str, course: Course) -> None:
        key = ledger_key("completion", user_id, course.id)
        applied = await self._ledger.applied(key)

        await self._user_stats.ensure(user_id)
        await self._count_once(
            key,
            applied,
            "completed_courses",
            lambda: self._user_stats.increment(user_id, "completed_courses", 1),
        )
        hours = course_index.total_hours(course)
        if hours > 0:
            await self._count_once(
                key,
                applied,
                "hours_learned",
                lambda: self._user_stats.increment(user_id, "hours_learned", hours),
            )

        await self._count_once(
            key,
            applied,
            "course_completions",
            lambda: self._courses.increment(course.id, "completions", 1),
        )
        if course.instructor_id:
            await self._instructor_stats.ensure(course.instructor_id)
            await self._count_once(
                key,
                applied,
                "instructor_completed_courses",
                lambda: self._instructor_stats.increment(
                    course.instructor_id, "completed_courses", 1
                ),
            )

    async def evaluate_achievements(self, user_id: str) -> tuple[str, ...]:
        stats = await self._user_stats.get(user_id)
        granted: list[str] = []
        for rule in self._rules:
            if not rule.predicate(stats):
                continue
            created = False
            if not await self._achievements.exists(user_id, rule.id):
                achievement = UnlockedAchievement.from_rule(user_id=user_id, rule=rule)
                created = await self._achievements.create(achievement)
                if not created:
                    continue
            key = ledger_key("achievement", user_id, rule.id)
            await self._count_once(
                key,
                await self._ledger.applied(key),
                "achievements",
                lambda: self._user_stats.increment(user_id, "achievements", 1),
            )
            if created:
                ACHIEVEMENTS_GRANTED.labels(rule_id=rule.id).inc()
                granted.append(rule.id)
        return tuple(granted)

    async def on_enrolled(self, user_id: str, course: Course) -> None:
        """Counters for a newly created enrollment. Safe to run again."""
        key = ledger_key("enrollment", user_id, course.id)
        applied = await self._ledger.applied(key)

        await self._user_stats.ensure(user_id)
        await self._count_once(
            key,
            applied,
            "courses_enrolled",
            lambda: self._user_stats.increment(user_id, "courses_enrolled", 1),
        )
        await self._count_once(
            key,
            applied,
            "students",
            lambda: self._courses.increment(course.id, "students", 1),
        )
        if course.instructor_id:
            await self._instructor_stats.ensure(course.instructor_id)
            for counter in ("total_students", "total_enrollments"):
                await self._count_once(
                    key,
                    applied,
                    f"instructor_{counter}",
                    lambda counter=counter: self._instructor_stats.increment(
                        course.instructor_id, counter, 1
                    ),
                )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

completion_service = CompletionService(
    courses=CourseRepo(document_store),
    certificates=CertificateRepo(document_store),
    user_stats=UserStatsRepo(document_store),
    instructor_stats=InstructorStatsRepo(document_store),
    achievements=AchievementRepo(document_store),
    ledger=CounterLedger(document_store),
)
