"""Achievement rules as data.

Adding an achievement means adding a row here; the completion service
evaluates every rule the same way (predicate holds and not unlocked yet).
"""

from __future__ import annotations

from learnpath.models.achievement import AchievementRule

ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule(
        id="first_course",
        title="First Course Completed",
        description="Completed your first course",
        type="course",
        predicate=lambda s: s.completed_courses >= 1,
    ),
    AchievementRule(
        id="five_courses",
        title="Dedicated Learner",
        description="Completed five courses",
        type="course",
        predicate=lambda s: s.completed_courses >= 5,
    ),
    AchievementRule(
        id="ten_hours",
        title="Ten Hours In",
        description="Spent ten hours learning",
        type="course",
        predicate=lambda s: s.hours_learned >= 10,
    ),
    AchievementRule(
        id="first_project",
        title="Builder",
        description="Completed your first project",
        type="project",
        predicate=lambda s: s.projects_completed >= 1,
    ),
    AchievementRule(
        id="first_hackathon",
        title="Hacker",
        description="Took part in a hackathon",
        type="hackathon",
        predicate=lambda s: s.hackathons_participated >= 1,
    ),
)
