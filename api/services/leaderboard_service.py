"""Leaderboard ranking.

The sorted index (score = current streak) is only a candidate source. The
authoritative values come from UserState, joined at read time: private
users and stale index members without a current-generation record are
dropped before the deterministic sort.

Ordering, most significant first:
1. current streak, descending
2. best streak, descending
3. day the current streak was reached, ascending (unknown sorts last)
4. user id, ascending
"""

import asyncio
import math

from core.store import KeyValueStore
from models import LeaderboardEntry, Privacy, UserState
from repositories import (
    DevSettingsRepository,
    LeaderboardRepository,
    UserStateRepository,
)

MIN_CANDIDATES = 100
OVERFETCH_FACTOR = 4
RANK_LOOKUP_DEPTH = 1000


def sort_key(entry: LeaderboardEntry) -> tuple[int, int, float, str]:
    achieved = entry.streak_achieved_day_utc
    if achieved is None:
        achieved = entry.last_checkin_day_utc
    return (
        -entry.current_streak,
        -entry.best_streak,
        achieved if achieved is not None else math.inf,
        entry.user_id,
    )


def to_entry(user_id: str, state: UserState) -> LeaderboardEntry:
    return LeaderboardEntry(
        user_id=user_id,
        current_streak=state.current_streak,
        best_streak=state.best_streak,
        # An active streak reached its current value on the last check-in
        streak_achieved_day_utc=state.last_checkin_day_utc,
        streak_start_day_utc=state.streak_start_day_utc,
        last_checkin_day_utc=state.last_checkin_day_utc,
    )


def order_entries(
    entries: list[LeaderboardEntry], limit: int
) -> list[LeaderboardEntry]:
    return sorted(entries, key=sort_key)[: max(limit, 0)]


async def rank(
    store: KeyValueStore,
    community_id: str,
    limit: int,
    generation: int | None = None,
) -> list[LeaderboardEntry]:
    if limit <= 0:
        return []
    if generation is None:
        generation = await DevSettingsRepository(store).get_generation(community_id)

    candidates = await LeaderboardRepository(store).top(
        community_id, max(limit * OVERFETCH_FACTOR, MIN_CANDIDATES)
    )
    users = UserStateRepository(store)
    states = await asyncio.gather(
        *(users.get(community_id, user_id, generation) for user_id, _ in candidates)
    )

    entries = [
        to_entry(user_id, state)
        for (user_id, _), state in zip(candidates, states)
        if state is not None and state.privacy == Privacy.PUBLIC
    ]
    return order_entries(entries, limit)


async def get_rank(
    store: KeyValueStore,
    community_id: str,
    user_id: str,
    generation: int | None = None,
) -> int | None:
    """1-based position of a public user within the top RANK_LOOKUP_DEPTH."""
    entries = await rank(store, community_id, RANK_LOOKUP_DEPTH, generation)
    for position, entry in enumerate(entries, start=1):
        if entry.user_id == user_id:
            return position
    return None


async def sync_entry(
    store: KeyValueStore, community_id: str, user_id: str, state: UserState
) -> None:
    """Bring the index in line with a freshly written UserState."""
    repo = LeaderboardRepository(store)
    if state.privacy == Privacy.PRIVATE:
        await repo.remove(community_id, user_id)
    else:
        await repo.upsert(community_id, user_id, state.current_streak)
