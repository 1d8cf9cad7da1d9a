from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True, slots=True)
class UserStats:
    """Per-user aggregate counters. Only ever incremented, never decremented."""

    user_id: str
    courses_enrolled: int = 0
    completed_courses: int = 0
    hours_learned: float = 0.0
    achievements: int = 0
    certificates: int = 0
    projects_completed: int = 0
    hackathons_participated: int = 0
    jobs_applied: int = 0
    events_attended: int = 0

    def counters(self) -> dict[str, float]:
        data = asdict(self)
        data.pop("user_id")
        return data


@dataclass(frozen=True, slots=True)
class InstructorStats:
    instructor_id: str
    total_students: int = 0
    total_enrollments: int = 0
    completed_courses: int = 0

    def counters(self) -> dict[str, float]:
        data = asdict(self)
        data.pop("instructor_id")
        return data
