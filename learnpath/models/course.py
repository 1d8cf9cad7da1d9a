from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

LessonType = Literal["video", "text", "quiz", "exercise", "project"]


@dataclass(frozen=True, slots=True)
class Lesson:
    id: str
    title: str = ""
    type: LessonType = "text"
    duration: int = 0  # minutes
    content: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Module:
    id: str
    title: str = ""
    lessons: tuple[Lesson, ...] = ()


@dataclass(frozen=True, slots=True)
class Course:
    """Authored content tree, read-only to the progress engine.

    Module order, then lesson order within a module, is the canonical
    lesson ordering.
    """

    id: str
    title: str = ""
    instructor_id: str = ""
    price: float = 0.0
    skills: tuple[str, ...] = ()
    modules: tuple[Module, ...] = ()
    students: int = 0
    completions: int = 0

    @property
    def is_free(self) -> bool:
        return self.price <= 0


@dataclass(frozen=True, slots=True)
class LessonRef:
    """A lesson located inside its module, for resume navigation."""

    module_id: str
    lesson_id: str
