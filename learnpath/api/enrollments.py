"""Enrollment endpoints.

  POST /v1/enrollments/{course_id}          enroll (201 new, 200 existing)
  GET  /v1/enrollments/{course_id}/access   may the caller open the course?

Checking access to a free course enrolls the caller as a side effect.
A new enrollment whose counters could not be written is still returned,
with `side_effects_pending` set and a retry queued.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from learnpath.api.dependencies import require_user
from learnpath.api.progress import EnrollmentStatusOut, ProgressOut
from learnpath.core.errors import CompletionSideEffectsFailed
from learnpath.models.principal import Principal
from learnpath.services.progress_service import (
    progress_service,
    queue_side_effects_retry,
)

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


class EnrollmentOut(BaseModel):
    user_id: str
    course_id: str
    status: str
    enrolled_at: int | None = None
    progress: ProgressOut
    side_effects_pending: bool = False


class AccessOut(BaseModel):
    has_access: bool
    is_owner: bool
    enrollment_status: EnrollmentStatusOut


@router.post("/{course_id}", response_model=EnrollmentOut)
async def enroll(
    course_id: str,
    response: Response,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    pending = False
    try:
        update = await progress_service.enroll(principal.user_id, course_id)
    except CompletionSideEffectsFailed as exc:
        update = exc.update
        await queue_side_effects_retry(principal.user_id, course_id)
        pending = True
    response.status_code = (
        status.HTTP_201_CREATED if update.created else status.HTTP_200_OK
    )
    enrollment = update.enrollment
    return EnrollmentOut(
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        status=enrollment.status,
        enrolled_at=enrollment.enrolled_at,
        progress=ProgressOut.from_enrollment(enrollment),
        side_effects_pending=pending,
    )


@router.get("/{course_id}/access", response_model=AccessOut)
async def check_access(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> AccessOut:
    access = await progress_service.check_access_status(principal.user_id, course_id)
    return AccessOut(
        has_access=access.has_access,
        is_owner=access.is_owner,
        enrollment_status=EnrollmentStatusOut.from_status(access.enrollment_status),
    )
