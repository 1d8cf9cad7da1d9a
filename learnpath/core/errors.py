"""Error taxonomy shared by the store, repos, services and API.

  NotFound        a referenced course, lesson, enrollment or document is missing
  Unavailable     transient store/transport failure, never retried here
  Unauthorized    the caller may not act on this user's records
  AlreadyExists   a create lost a race; callers re-read instead of failing

The API layer maps each family to one HTTP status in a single handler
(see learnpath/main.py), so services raise these instead of HTTPException.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from learnpath.services.progress_service import ProgressUpdate


class LearnpathError(Exception):
    pass


class NotFound(LearnpathError):
    pass


class Unavailable(LearnpathError):
    pass


class Unauthorized(LearnpathError):
    pass


class AlreadyExists(LearnpathError):
    pass


class DocumentNotFound(NotFound):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class DocumentAlreadyExists(AlreadyExists):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class StoreUnavailable(Unavailable):
    pass


class CourseNotFound(NotFound):
    def __init__(self, course_id: str) -> None:
        super().__init__(f"course {course_id!r} not found")
        self.course_id = course_id


class LessonNotFound(NotFound):
    def __init__(self, course_id: str, lesson_id: str) -> None:
        super().__init__(f"lesson {lesson_id!r} not found in course {course_id!r}")
        self.course_id = course_id
        self.lesson_id = lesson_id


class EnrollmentNotFound(NotFound):
    def __init__(self, user_id: str, course_id: str) -> None:
        super().__init__(f"no enrollment for user={user_id} course={course_id}")
        self.user_id = user_id
        self.course_id = course_id


class EnrollmentAlreadyExists(AlreadyExists):
    def __init__(self, user_id: str, course_id: str) -> None:
        super().__init__(f"enrollment exists for user={user_id} course={course_id}")
        self.user_id = user_id
        self.course_id = course_id


class CompletionSideEffectsFailed(LearnpathError):
    """The enrollment was written but its counters or completion effects failed.

    `update` is what was durably persisted and is authoritative from that
    point; replay_completion re-runs the side effects safely.
    """

    def __init__(self, update: ProgressUpdate, cause: Exception) -> None:
        super().__init__(f"completion side effects failed: {cause}")
        self.update = update
        self.cause = cause


class CompletionStepFailed(LearnpathError):
    """One step of the completion side effects raised.

    Every step is safe to run again; see CounterLedger.
    """

    def __init__(self, step: str) -> None:
        super().__init__(f"completion step {step!r} failed")
        self.step = step
