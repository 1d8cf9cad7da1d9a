from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

EnrollmentState = Literal["active", "completed"]


def enrollment_key(user_id: str, course_id: str) -> str:
    """Deterministic document id shared by enrollments, certificates and the cache."""
    return f"{user_id}_{course_id}"


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Progress substructure of an enrollment.

    `progress` is a projection of `completed_lessons` / `total_lessons`
    and is only ever recomputed, never set on its own.
    """

    completed_lessons: tuple[str, ...] = ()
    progress: int = 0
    total_lessons: int = 0
    current_lesson: str = ""
    next_lesson: str = ""
    module_progress: dict[str, int] = field(default_factory=dict)
    last_accessed: int | None = None


@dataclass(frozen=True, slots=True)
class Enrollment:
    user_id: str
    course_id: str
    status: EnrollmentState = "active"
    enrolled_at: int | None = None
    progress: LessonProgress = field(default_factory=LessonProgress)

    @property
    def key(self) -> str:
        return enrollment_key(self.user_id, self.course_id)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @staticmethod
    def new(
        *,
        user_id: str,
        course_id: str,
        progress: LessonProgress,
        status: EnrollmentState = "active",
    ) -> Enrollment:
        return Enrollment(
            user_id=user_id, course_id=course_id, status=status, progress=progress
        )


@dataclass(frozen=True, slots=True)
class EnrollmentStatus:
    """Read-only projection handed to the UI."""

    enrolled: bool = False
    progress: int = 0
    completed: bool = False
    current_lesson: str | None = None
    next_lesson: str | None = None
    certificate_issued: bool = False


@dataclass(frozen=True, slots=True)
class AccessStatus:
    has_access: bool
    enrollment_status: EnrollmentStatus
    is_owner: bool = False
