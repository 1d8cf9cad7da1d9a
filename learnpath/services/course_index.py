"""Course structure index.

Answers ordering questions about a course's module/lesson tree.  The
canonical order is module order, then lesson order within the module;
empty modules are skipped.  Everything here is pure and synchronous.
"""

from __future__ import annotations

from learnpath.models.course import Course, LessonRef


def flatten(course: Course) -> list[str]:
    """All lesson ids in course order."""
    return [lesson.id for module in course.modules for lesson in module.lessons]


def total_lessons(course: Course) -> int:
    return sum(len(module.lessons) for module in course.modules)


def contains(course: Course, lesson_id: str) -> bool:
    return any(
        lesson.id == lesson_id for module in course.modules for lesson in module.lessons
    )


def next_of(course: Course, lesson_id: str) -> str | None:
    """The lesson after `lesson_id`, or None at the end or when it is unknown."""
    found = False
    for module in course.modules:
        for lesson in module.lessons:
            if found:
                return lesson.id
            if lesson.id == lesson_id:
                found = True
    return None


def first_lesson(course: Course) -> LessonRef | None:
    for module in course.modules:
        if module.lessons:
            return LessonRef(module_id=module.id, lesson_id=module.lessons[0].id)
    return None


def module_of(course: Course, lesson_id: str) -> str | None:
    for module in course.modules:
        if any(lesson.id == lesson_id for lesson in module.lessons):
            return module.id
    return None


def locate(course: Course, lesson_id: str) -> LessonRef | None:
    module_id = module_of(course, lesson_id)
    if module_id is None:
        return None
    return LessonRef(module_id=module_id, lesson_id=lesson_id)


def total_hours(course: Course) -> float:
    """Sum of lesson durations (minutes) in hours, two decimals."""
    minutes = sum(
        lesson.duration for module in course.modules for lesson in module.lessons
    )
    return round(minutes / 60, 2)
