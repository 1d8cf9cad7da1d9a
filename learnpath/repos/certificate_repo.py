from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from learnpath.core.errors import DocumentAlreadyExists
from learnpath.models.certificate import Certificate, CertificateMetadata
from learnpath.models.enrollment import enrollment_key
from learnpath.repos.document_store import SERVER_TIMESTAMP, DocumentStore

COLLECTION = "certificates"


class CertificateRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get(self, user_id: str, course_id: str) -> Certificate | None:
        return await self.get_by_id(enrollment_key(user_id, course_id))

    async def get_by_id(self, certificate_id: str) -> Certificate | None:
        data = await self._store.get_document(COLLECTION, certificate_id)
        if data is None:
            return None
        return _doc_to_certificate(data)

    async def create(self, certificate: Certificate) -> bool:
        """Create the certificate once. Returns False if it already existed."""
        doc = {
            "user_id": certificate.user_id,
            "course_id": certificate.course_id,
            "title": certificate.title,
            "instructor_id": certificate.instructor_id,
            "verification_token": certificate.verification_token,
            "issued_at": SERVER_TIMESTAMP,
            "type": certificate.type,
            "metadata": {
                "grade": certificate.metadata.grade,
                "skills": list(certificate.metadata.skills),
            },
        }
        try:
            await self._store.create_document(COLLECTION, certificate.id, doc)
        except DocumentAlreadyExists:
            return False
        return True

    async def list_for_user(
        self, user_id: str, course_id: str | None = None
    ) -> list[Certificate]:
        predicates = [("user_id", "==", user_id)]
        if course_id:
            predicates.append(("course_id", "==", course_id))
        snapshots = await self._store.query(
            COLLECTION, predicates, order_by="-issued_at"
        )
        return [_doc_to_certificate(s.data) for s in snapshots]


def _doc_to_certificate(data: Mapping[str, Any]) -> Certificate:
    metadata = data.get("metadata") or {}
    return Certificate(
        user_id=data.get("user_id") or "",
        course_id=data.get("course_id") or "",
        title=data.get("title") or "",
        instructor_id=data.get("instructor_id") or "",
        verification_token=data.get("verification_token") or "",
        issued_at=data.get("issued_at"),
        type=data.get("type") or "completion",
        metadata=CertificateMetadata(
            grade=int(metadata.get("grade", 100)),
            skills=tuple(metadata.get("skills") or ()),
        ),
    )
