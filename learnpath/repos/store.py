"""Process-wide document store, chosen from configuration at import time."""

from __future__ import annotations

from learnpath.db.change_feed import change_feed
from learnpath.db.engine import async_session_factory
from learnpath.repos.document_store import DocumentStore, InMemoryDocumentStore
from learnpath.repos.pg_document_store import PgDocumentStore

if async_session_factory is not None:
    document_store: DocumentStore = PgDocumentStore(
        async_session_factory, feed=change_feed
    )
else:
    document_store = InMemoryDocumentStore(feed=change_feed)
