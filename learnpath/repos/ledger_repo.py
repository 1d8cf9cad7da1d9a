"""Which counter increments a side effect has already applied.

increment_field is atomic but not idempotent.  Every increment that a
retry may repeat is recorded here once it lands, and the retry skips the
names it finds:

  counterLedger/enrollment_<user>_<course>   courses_enrolled, students, ...
  counterLedger/completion_<user>_<course>   certificates, completed_courses, ...
  counterLedger/achievement_<user>_<rule>    achievements

A failure between an increment and its mark still repeats that one
increment on replay.
"""

from __future__ import annotations

from learnpath.repos.document_store import DocumentStore

COLLECTION = "counterLedger"


def ledger_key(kind: str, *parts: str) -> str:
    return "_".join((kind, *parts))


class CounterLedger:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def applied(self, key: str) -> set[str]:
        data = await self._store.get_document(COLLECTION, key)
        return set((data or {}).get("applied") or ())

    async def mark(self, key: str, name: str) -> None:
        await self._store.set_document(
            COLLECTION, key, {"applied": {name: True}}, merge=True
        )
