"""Aggregate stats, day-membership and participant-membership storage.

Counters that only ever grow are updated with atomic hash increments.
Set adds double as idempotence gates: a duplicate add reports False and the
caller skips the matching increment.
"""

from core.store import KeyValueStore
from models import AggregateStats
from repositories.utils import Keys, parse_non_negative_int


def participants_key(community_id: str, generation: int) -> str:
    return f"participants:{community_id}:{generation}"


def parse_stats_record(data: dict[str, str], today: int) -> AggregateStats | None:
    """Raw (not day-normalized) stats, or None for an empty hash.

    Older records used participantsCount and per-day checkins:{day} fields.
    """
    if not data:
        return None

    return AggregateStats(
        last_stats_day=parse_non_negative_int(data.get("lastStatsDay"), today),
        participants_total=parse_non_negative_int(
            data.get("participantsTotal", data.get("participantsCount"))
        ),
        checkins_today=parse_non_negative_int(
            data.get("checkinsToday", data.get(f"checkins:{today}"))
        ),
        checkins_all_time=parse_non_negative_int(data.get("checkinsAllTime")),
        longest_streak_all_time=parse_non_negative_int(
            data.get("longestStreakAllTime")
        ),
    )


def serialize_stats_record(stats: AggregateStats) -> dict[str, str]:
    return {
        "lastStatsDay": str(stats.last_stats_day),
        "participantsTotal": str(stats.participants_total),
        "checkinsToday": str(stats.checkins_today),
        "checkinsAllTime": str(stats.checkins_all_time),
        "longestStreakAllTime": str(stats.longest_streak_all_time),
    }


class StatsRepository:
    """Repository for challenge-wide counters and per-day membership sets."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self, community_id: str, today: int) -> AggregateStats | None:
        data = await self.store.hgetall(Keys.stats(community_id))
        return parse_stats_record(data, today)

    async def save(self, community_id: str, stats: AggregateStats) -> None:
        await self.store.hset(Keys.stats(community_id), serialize_stats_record(stats))

    async def set_fields(self, community_id: str, **fields: int) -> None:
        await self.store.hset(
            Keys.stats(community_id),
            {name: str(value) for name, value in fields.items()},
        )

    async def increment(self, community_id: str, field: str, amount: int = 1) -> int:
        return await self.store.hincrby(Keys.stats(community_id), field, amount)

    async def clear(self, community_id: str) -> None:
        await self.store.delete(Keys.stats(community_id))

    async def add_day_member(self, community_id: str, day: int, user_id: str) -> bool:
        """True when the user was not yet in the day's set."""
        return await self.store.sadd(Keys.today(community_id, day), user_id)

    async def day_member_count(self, community_id: str, day: int) -> int:
        return await self.store.scard(Keys.today(community_id, day))

    async def delete_day_sets(self, community_id: str, days: list[int]) -> None:
        if days:
            await self.store.delete(*(Keys.today(community_id, day) for day in days))

    async def add_participant(
        self, community_id: str, generation: int, user_id: str
    ) -> bool:
        """True the first time a user registers as a participant this generation."""
        return await self.store.sadd(
            participants_key(community_id, generation), user_id
        )
