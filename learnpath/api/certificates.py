"""Certificate endpoints.

  GET /v1/certificates?user_id=&course_id=            list (own, or any for admin)
  GET /v1/certificates/{certificate_id}/verify?token= public verification

Verification is unauthenticated: an employer holding the certificate id
and its token can confirm it without an account.  A wrong token answers
exactly like an unknown id.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from learnpath.api.dependencies import require_user, resolve_subject
from learnpath.models.certificate import Certificate
from learnpath.models.principal import Principal
from learnpath.repos.certificate_repo import CertificateRepo
from learnpath.repos.store import document_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])

certificate_repo = CertificateRepo(document_store)


class CertificateOut(BaseModel):
    id: str
    user_id: str
    course_id: str
    title: str
    instructor_id: str
    issued_at: int | None = None
    type: str
    grade: int
    skills: list[str]

    @staticmethod
    def from_certificate(cert: Certificate) -> CertificateOut:
        return CertificateOut(
            id=cert.id,
            user_id=cert.user_id,
            course_id=cert.course_id,
            title=cert.title,
            instructor_id=cert.instructor_id,
            issued_at=cert.issued_at,
            type=cert.type,
            grade=cert.metadata.grade,
            skills=list(cert.metadata.skills),
        )


class VerificationOut(BaseModel):
    valid: bool
    certificate: CertificateOut


@router.get("", response_model=list[CertificateOut])
async def list_certificates(
    principal: Annotated[Principal, Depends(require_user)],
    user_id: Annotated[str | None, Query()] = None,
    course_id: Annotated[str | None, Query()] = None,
) -> list[CertificateOut]:
    subject = resolve_subject(principal, user_id)
    certs = await certificate_repo.list_for_user(subject, course_id)
    return [CertificateOut.from_certificate(c) for c in certs]


@router.get("/{certificate_id}/verify", response_model=VerificationOut)
async def verify_certificate(
    certificate_id: str,
    token: Annotated[str, Query(min_length=1)],
) -> VerificationOut:
    cert = await certificate_repo.get_by_id(certificate_id)
    if cert is None or not hmac.compare_digest(cert.verification_token, token):
        logger.warning("Certificate verification failed for id=%s", certificate_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="certificate not found"
        )
    return VerificationOut(
        valid=True, certificate=CertificateOut.from_certificate(cert)
    )
