from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from learnpath.core.errors import DocumentAlreadyExists
from learnpath.models.achievement import UnlockedAchievement, achievement_key
from learnpath.repos.document_store import SERVER_TIMESTAMP, DocumentStore

COLLECTION = "userAchievements"


class AchievementRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def exists(self, user_id: str, rule_id: str) -> bool:
        data = await self._store.get_document(
            COLLECTION, achievement_key(user_id, rule_id)
        )
        return data is not None

    async def create(self, achievement: UnlockedAchievement) -> bool:
        """Unlock once. Returns False if the document already existed."""
        doc = {
            "user_id": achievement.user_id,
            "rule_id": achievement.rule_id,
            "title": achievement.title,
            "description": achievement.description,
            "type": achievement.type,
            "unlocked_at": SERVER_TIMESTAMP,
        }
        try:
            await self._store.create_document(COLLECTION, achievement.id, doc)
        except DocumentAlreadyExists:
            return False
        return True

    async def list_for_user(self, user_id: str) -> list[UnlockedAchievement]:
        snapshots = await self._store.query(
            COLLECTION, [("user_id", "==", user_id)], order_by="-unlocked_at"
        )
        return [_doc_to_achievement(s.data) for s in snapshots]


def _doc_to_achievement(data: Mapping[str, Any]) -> UnlockedAchievement:
    return UnlockedAchievement(
        user_id=data.get("user_id") or "",
        rule_id=data.get("rule_id") or "",
        title=data.get("title") or "",
        description=data.get("description") or "",
        type=data.get("type") or "course",
        unlocked_at=data.get("unlocked_at"),
    )
