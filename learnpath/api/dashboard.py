"""Learner dashboard: stats, enrollments, certificates and achievements in one call."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from learnpath.api.certificates import CertificateOut
from learnpath.api.dependencies import require_user, resolve_subject
from learnpath.api.progress import ProgressOut
from learnpath.models.principal import Principal
from learnpath.services.progress_service import progress_service

router = APIRouter(prefix="/v1/dashboard", tags=["dashboard"])


class StatsOut(BaseModel):
    courses_enrolled: int
    completed_courses: int
    hours_learned: float
    achievements: int
    certificates: int
    projects_completed: int
    hackathons_participated: int
    jobs_applied: int
    events_attended: int


class AchievementOut(BaseModel):
    rule_id: str
    title: str
    description: str
    type: str
    unlocked_at: int | None = None


class DashboardOut(BaseModel):
    user_id: str
    stats: StatsOut
    enrollments: list[ProgressOut]
    certificates: list[CertificateOut]
    achievements: list[AchievementOut]


@router.get("", response_model=DashboardOut)
async def get_dashboard(
    principal: Annotated[Principal, Depends(require_user)],
    user_id: Annotated[str | None, Query()] = None,
) -> DashboardOut:
    subject = resolve_subject(principal, user_id)
    dashboard = await progress_service.get_dashboard(subject)
    return DashboardOut(
        user_id=subject,
        stats=StatsOut(**dashboard.stats.counters()),
        enrollments=[ProgressOut.from_enrollment(e) for e in dashboard.enrollments],
        certificates=[
            CertificateOut.from_certificate(c) for c in dashboard.certificates
        ],
        achievements=[
            AchievementOut(
                rule_id=a.rule_id,
                title=a.title,
                description=a.description,
                type=a.type,
                unlocked_at=a.unlocked_at,
            )
            for a in dashboard.achievements
        ],
    )
