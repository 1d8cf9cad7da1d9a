"""SQLAlchemy table definitions.

The document store keeps every collection in one JSONB table keyed by
(collection, id).  Domain records never see rows: the repos convert
between stored dicts and the frozen dataclasses in learnpath/models/.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.db.engine import Base


class DocumentRow(Base):
    __tablename__ = "documents"
    __table_args__ = (
        # Serves the equality predicates the repos push down with @>.
        Index("ix_documents_data", "data", postgresql_using="gin"),
    )

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
