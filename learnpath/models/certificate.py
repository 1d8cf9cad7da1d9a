from __future__ import annotations

import secrets
from dataclasses import dataclass, field

from learnpath.models.course import Course
from learnpath.models.enrollment import enrollment_key


@dataclass(frozen=True, slots=True)
class CertificateMetadata:
    grade: int = 100
    skills: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued course-completion certificate.

    Title and instructor are snapshots taken at issuance; later course
    edits do not reach issued certificates.
    """

    user_id: str
    course_id: str
    title: str
    instructor_id: str
    verification_token: str
    issued_at: int | None = None
    type: str = "completion"
    metadata: CertificateMetadata = field(default_factory=CertificateMetadata)

    @property
    def id(self) -> str:
        return enrollment_key(self.user_id, self.course_id)

    @staticmethod
    def for_course(*, user_id: str, course: Course) -> Certificate:
        return Certificate(
            user_id=user_id,
            course_id=course.id,
            title=course.title,
            instructor_id=course.instructor_id,
            verification_token=secrets.token_urlsafe(24),
            metadata=CertificateMetadata(skills=course.skills),
        )
