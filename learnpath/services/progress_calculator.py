from __future__ import annotations

from collections.abc import Collection

from learnpath.models.course import Course


def _round_half_up(value: float) -> int:
    # round() is banker's rounding: 12.5 -> 12.  Progress rounds 12.5 -> 13.
    return int(value + 0.5)


def percentage(completed_count: int, total_lessons: int) -> int:
    """Whole-number completion percentage, clamped to 0..100.

    A course with no lessons is 0% rather than a division error.
    """
    if total_lessons <= 0:
        return 0
    return min(100, _round_half_up(max(0, completed_count) / total_lessons * 100))


def is_complete(progress: int) -> bool:
    return progress >= 100


def module_progress(course: Course, completed: Collection[str]) -> dict[str, int]:
    done = set(completed)
    return {
        module.id: percentage(
            sum(1 for lesson in module.lessons if lesson.id in done),
            len(module.lessons),
        )
        for module in course.modules
    }
