"""Domain records for the streak challenge.

These are plain dataclasses; repositories own their storage layout and
services pass them around. Transitions build new instances with
dataclasses.replace() rather than mutating.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum as PyEnum

UTC_TIMEZONE = "UTC"


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


class Privacy(str, PyEnum):
    """Leaderboard visibility of a participant."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class UserState:
    """One participant's streak record within a community.

    Invariant: last_checkin_day_utc is None exactly when current_streak == 0
    and streak_start_day_utc is None.
    """

    joined_at: str
    privacy: Privacy = Privacy.PUBLIC
    current_streak: int = 0
    best_streak: int = 0
    streak_start_day_utc: int | None = None
    last_checkin_day_utc: int | None = None
    freeze_tokens: int = 0
    freeze_saves: int = 0
    badges: tuple[str, ...] = ()
    is_participant: bool = True

    @classmethod
    def fresh(cls, privacy: Privacy = Privacy.PUBLIC) -> "UserState":
        return cls(joined_at=utcnow_iso(), privacy=privacy)


@dataclass(frozen=True)
class CheckInMetadata:
    """Side facts of one check-in, reported back to the caller."""

    used_freeze: bool
    earned_freeze: bool
    token_count: int
    earned_badge: str | None


@dataclass(frozen=True)
class ChallengeConfig:
    template_id: str
    title: str
    description: str
    badge_thresholds: tuple[int, ...]
    created_at: str
    updated_at: str
    active_post_id: str | None = None
    timezone: str = UTC_TIMEZONE


@dataclass(frozen=True)
class AggregateStats:
    """Challenge-wide counters. checkins_today is relative to last_stats_day."""

    last_stats_day: int
    participants_total: int = 0
    checkins_today: int = 0
    checkins_all_time: int = 0
    longest_streak_all_time: int = 0


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    current_streak: int
    best_streak: int
    streak_achieved_day_utc: int | None
    streak_start_day_utc: int | None
    last_checkin_day_utc: int | None
    display_name: str | None = field(default=None, compare=False)
