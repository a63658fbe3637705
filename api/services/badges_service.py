"""Milestone badges awarded by the streak engine.

Badges are stored on the user record in the order they were earned.
A badge is earned on the check-in whose new streak equals the milestone
exactly; badges are never removed or duplicated.
"""

from typing import TypedDict


class StreakBadgeInfo(TypedDict):
    """Streak badge configuration."""

    name: str
    description: str
    required_streak: int


STREAK_BADGES: list[StreakBadgeInfo] = [
    {
        "name": "Committed",
        "description": "Checked in 7 days in a row",
        "required_streak": 7,
    },
    {
        "name": "Consistent",
        "description": "Checked in 30 days in a row",
        "required_streak": 30,
    },
    {
        "name": "Disciplined",
        "description": "Checked in 90 days in a row",
        "required_streak": 90,
    },
    {
        "name": "Unstoppable",
        "description": "Checked in 180 days in a row",
        "required_streak": 180,
    },
    {
        "name": "Legend",
        "description": "Checked in 365 days in a row",
        "required_streak": 365,
    },
]


def milestone_badge_for(streak: int, earned: tuple[str, ...]) -> str | None:
    """Badge newly earned by reaching `streak`, or None."""
    for badge_info in STREAK_BADGES:
        if streak == badge_info["required_streak"] and badge_info["name"] not in earned:
            return badge_info["name"]
    return None


def get_badge_catalog() -> list[StreakBadgeInfo]:
    return list(STREAK_BADGES)
