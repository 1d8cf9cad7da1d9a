"""Lesson progress endpoints.

  POST /v1/progress/{course_id}/lessons/{lesson_id}   record a lesson event
  GET  /v1/progress/{course_id}                       cached progress view
  GET  /v1/progress/{course_id}/status                enrollment status
  GET  /v1/progress/{course_id}/resume                where to pick up

When the write succeeds but its counters, certificate or achievements
fail, the POST still answers with the written progress and
`side_effects_pending` set; a `completion_side_effects` task is queued
for the worker.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from learnpath.api.dependencies import require_user, resolve_subject
from learnpath.core.errors import CompletionSideEffectsFailed
from learnpath.models.enrollment import Enrollment, EnrollmentStatus
from learnpath.models.principal import Principal
from learnpath.services.progress_cache import CachedProgress
from learnpath.services.progress_service import (
    progress_service,
    queue_side_effects_retry,
)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class LessonEventIn(BaseModel):
    completed: bool = True


class ProgressOut(BaseModel):
    user_id: str
    course_id: str
    progress: int
    status: str
    completed_lessons: list[str]
    total_lessons: int
    current_lesson: str
    next_lesson: str
    module_progress: dict[str, int]
    last_accessed: int | None = None

    @staticmethod
    def from_cached(
        user_id: str, course_id: str, cached: CachedProgress
    ) -> ProgressOut:
        return ProgressOut(
            user_id=user_id,
            course_id=course_id,
            progress=cached.progress,
            status=cached.status,
            completed_lessons=list(cached.completed_lessons),
            total_lessons=cached.total_lessons,
            current_lesson=cached.current_lesson,
            next_lesson=cached.next_lesson,
            module_progress=dict(cached.module_progress),
            last_accessed=cached.last_accessed,
        )

    @staticmethod
    def from_enrollment(enrollment: Enrollment) -> ProgressOut:
        return ProgressOut.from_cached(
            enrollment.user_id,
            enrollment.course_id,
            CachedProgress.from_enrollment(enrollment),
        )


class LessonEventOut(ProgressOut):
    became_completed: bool = False
    side_effects_pending: bool = False


class EnrollmentStatusOut(BaseModel):
    enrolled: bool
    progress: int
    completed: bool
    current_lesson: str | None = None
    next_lesson: str | None = None
    certificate_issued: bool

    @staticmethod
    def from_status(result: EnrollmentStatus) -> EnrollmentStatusOut:
        return EnrollmentStatusOut(
            enrolled=result.enrolled,
            progress=result.progress,
            completed=result.completed,
            current_lesson=result.current_lesson,
            next_lesson=result.next_lesson,
            certificate_issued=result.certificate_issued,
        )


class LessonRefOut(BaseModel):
    module_id: str
    lesson_id: str


@router.post("/{course_id}/lessons/{lesson_id}", response_model=LessonEventOut)
async def record_lesson_event(
    course_id: str,
    lesson_id: str,
    body: LessonEventIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> LessonEventOut:
    pending = False
    try:
        update = await progress_service.record_lesson_completion(
            principal.user_id, course_id, lesson_id, body.completed
        )
    except CompletionSideEffectsFailed as exc:
        update = exc.update
        await queue_side_effects_retry(principal.user_id, course_id)
        pending = True

    view = ProgressOut.from_enrollment(update.enrollment)
    return LessonEventOut(
        **view.model_dump(),
        became_completed=update.became_completed,
        side_effects_pending=pending,
    )


@router.get("/{course_id}", response_model=ProgressOut)
async def get_progress(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    user_id: Annotated[str | None, Query()] = None,
) -> ProgressOut:
    subject = resolve_subject(principal, user_id)
    cached = await progress_service.get_progress(subject, course_id)
    if cached is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="not enrolled"
        )
    return ProgressOut.from_cached(subject, course_id, cached)


@router.get("/{course_id}/status", response_model=EnrollmentStatusOut)
async def get_enrollment_status(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    user_id: Annotated[str | None, Query()] = None,
) -> EnrollmentStatusOut:
    subject = resolve_subject(principal, user_id)
    result = await progress_service.get_enrollment_status(subject, course_id)
    return EnrollmentStatusOut.from_status(result)


@router.get("/{course_id}/resume", response_model=LessonRefOut)
async def resume(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> LessonRefOut:
    ref = await progress_service.resume_lesson(principal.user_id, course_id)
    if ref is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="course has no lessons"
        )
    return LessonRefOut(module_id=ref.module_id, lesson_id=ref.lesson_id)
