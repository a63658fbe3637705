"""Built-in challenge templates.

A template supplies the default copy and badge thresholds for a community's
challenge config. Switching templates never touches stored streak data.
"""

from typing import TypedDict

DEFAULT_TEMPLATE_ID = "custom"


class ChallengeTemplate(TypedDict):
    id: str
    label: str
    title: str
    description: str
    badge_thresholds: list[int]


TEMPLATES: list[ChallengeTemplate] = [
    {
        "id": "custom",
        "label": "Custom",
        "title": "Streak Engine",
        "description": "Join and check in daily. Reset time is 00:00 UTC.",
        "badge_thresholds": [3, 7, 14, 30],
    },
    {
        "id": "habit_30",
        "label": "30-Day Habit",
        "title": "30-Day Habit Challenge",
        "description": "Build consistency by checking in every day for 30 days.",
        "badge_thresholds": [3, 7, 14, 30],
    },
    {
        "id": "coding_daily",
        "label": "Coding Daily",
        "title": "Code Every Day",
        "description": "Check in after a focused coding session each UTC day.",
        "badge_thresholds": [5, 10, 20, 50],
    },
    {
        "id": "fitness_daily",
        "label": "Fitness Daily",
        "title": "Daily Fitness",
        "description": "Stay active with one workout check-in per UTC day.",
        "badge_thresholds": [3, 7, 21, 60],
    },
    {
        "id": "study_daily",
        "label": "Study Daily",
        "title": "Study Streak",
        "description": "Check in after completing your study goal for the day.",
        "badge_thresholds": [5, 15, 30, 90],
    },
]

_TEMPLATE_INDEX: dict[str, ChallengeTemplate] = {t["id"]: t for t in TEMPLATES}

TEMPLATE_IDS: tuple[str, ...] = tuple(_TEMPLATE_INDEX)


class TemplateConfig(TypedDict):
    template_id: str
    title: str
    description: str
    badge_thresholds: list[int]


def is_template_id(value: object) -> bool:
    return isinstance(value, str) and value in _TEMPLATE_INDEX


def get_template(template_id: str) -> ChallengeTemplate:
    """Template by id; unknown ids fall back to the custom template."""
    return _TEMPLATE_INDEX.get(template_id, _TEMPLATE_INDEX[DEFAULT_TEMPLATE_ID])


def apply_template_to_config(
    template_id: str,
    title: str | None = None,
    description: str | None = None,
    badge_thresholds: list[int] | None = None,
) -> TemplateConfig:
    """Template defaults with any provided overrides applied on top."""
    template = get_template(template_id)
    return {
        "template_id": template["id"],
        "title": title if title is not None else template["title"],
        "description": (
            description if description is not None else template["description"]
        ),
        "badge_thresholds": list(
            badge_thresholds
            if badge_thresholds is not None
            else template["badge_thresholds"]
        ),
    }
