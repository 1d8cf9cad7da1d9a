from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from learnpath.models.stats import UserStats

AchievementType = Literal["course", "project", "hackathon", "community"]


def achievement_key(user_id: str, rule_id: str) -> str:
    return f"{user_id}_{rule_id}"


@dataclass(frozen=True, slots=True)
class AchievementRule:
    """One row of the declarative achievement table."""

    id: str
    title: str
    description: str
    type: AchievementType
    predicate: Callable[[UserStats], bool]


@dataclass(frozen=True, slots=True)
class UnlockedAchievement:
    user_id: str
    rule_id: str
    title: str
    description: str
    type: AchievementType
    unlocked_at: int | None = None

    @property
    def id(self) -> str:
        return achievement_key(self.user_id, self.rule_id)

    @staticmethod
    def from_rule(*, user_id: str, rule: AchievementRule) -> UnlockedAchievement:
        return UnlockedAchievement(
            user_id=user_id,
            rule_id=rule.id,
            title=rule.title,
            description=rule.description,
            type=rule.type,
        )
