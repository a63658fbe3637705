"""User state repository with generation fencing.

Every write is tagged with the community's state generation at write time.
A record whose tag differs from the current generation is treated exactly
like a missing record, which is how a community reset invalidates all
participants without enumerating their keys.
"""

import json

from core.store import KeyValueStore
from models import Privacy, UserState
from repositories.utils import (
    Keys,
    dump_bool,
    from_day_storage,
    parse_bool,
    parse_json_list,
    parse_non_negative_int,
    to_day_storage,
)

GENERATION_FIELD = "stateGeneration"
EPOCH_ISO = "1970-01-01T00:00:00+00:00"
MAX_FREEZE_TOKENS = 2


def serialize_user_state(state: UserState, generation: int) -> dict[str, str]:
    return {
        "joinedAt": state.joined_at,
        "privacy": state.privacy.value,
        "currentStreak": str(state.current_streak),
        "bestStreak": str(state.best_streak),
        "streakStartDayUTC": to_day_storage(state.streak_start_day_utc),
        "lastCheckinDayUTC": to_day_storage(state.last_checkin_day_utc),
        "freezeTokens": str(state.freeze_tokens),
        "freezeSaves": str(state.freeze_saves),
        "badges": json.dumps(list(state.badges)),
        "isParticipant": dump_bool(state.is_participant),
        GENERATION_FIELD: str(generation),
    }


def _parse_badges(value: str | None) -> tuple[str, ...]:
    decoded = parse_json_list(value) or []
    badges: list[str] = []
    for badge in decoded:
        if isinstance(badge, str) and badge not in badges:
            badges.append(badge)
    return tuple(badges)


def deserialize_user_state(data: dict[str, str]) -> UserState | None:
    """Parse a stored hash, tolerating fields missing from older records."""
    if not data:
        return None

    current_streak = parse_non_negative_int(data.get("currentStreak"))
    streak_start = from_day_storage(data.get("streakStartDayUTC"))
    last_checkin = from_day_storage(data.get("lastCheckinDayUTC"))

    # Keep the unset-together invariant even for half-written legacy records
    if last_checkin is None or current_streak == 0:
        current_streak, streak_start, last_checkin = 0, None, None
    elif streak_start is None:
        streak_start = max(last_checkin - current_streak + 1, 0)

    return UserState(
        joined_at=data.get("joinedAt") or EPOCH_ISO,
        privacy=Privacy.PRIVATE if data.get("privacy") == "private" else Privacy.PUBLIC,
        current_streak=current_streak,
        best_streak=max(parse_non_negative_int(data.get("bestStreak")), current_streak),
        streak_start_day_utc=streak_start,
        last_checkin_day_utc=last_checkin,
        freeze_tokens=min(
            parse_non_negative_int(data.get("freezeTokens")), MAX_FREEZE_TOKENS
        ),
        freeze_saves=parse_non_negative_int(data.get("freezeSaves")),
        badges=_parse_badges(data.get("badges")),
        is_participant=parse_bool(data.get("isParticipant"), fallback=True),
    )


class UserStateRepository:
    """Repository for per-user streak records."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(
        self, community_id: str, user_id: str, generation: int
    ) -> UserState | None:
        """None when absent or written under another generation."""
        data = await self.store.hgetall(Keys.user(community_id, user_id))
        if not data:
            return None
        if parse_non_negative_int(data.get(GENERATION_FIELD)) != generation:
            return None
        return deserialize_user_state(data)

    async def save(
        self, community_id: str, user_id: str, state: UserState, generation: int
    ) -> None:
        await self.store.hset(
            Keys.user(community_id, user_id), serialize_user_state(state, generation)
        )
