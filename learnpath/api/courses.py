"""Course aggregate endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from learnpath.api.dependencies import require_user
from learnpath.models.principal import Principal
from learnpath.services.progress_service import progress_service

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CompletionRateOut(BaseModel):
    course_id: str
    completion_rate: float


@router.get("/{course_id}/completion-rate", response_model=CompletionRateOut)
async def completion_rate(
    course_id: str,
    _principal: Annotated[Principal, Depends(require_user)],
) -> CompletionRateOut:
    rate = await progress_service.get_course_completion_rate(course_id)
    return CompletionRateOut(course_id=course_id, completion_rate=rate)
