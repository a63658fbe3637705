"""Leaderboard index: sorted set of user ids scored by current streak."""

from core.store import KeyValueStore
from repositories.utils import Keys


class LeaderboardRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def upsert(
        self, community_id: str, user_id: str, current_streak: int
    ) -> None:
        await self.store.zadd(Keys.leaderboard(community_id), user_id, current_streak)

    async def remove(self, community_id: str, user_id: str) -> None:
        await self.store.zrem(Keys.leaderboard(community_id), user_id)

    async def top(self, community_id: str, count: int) -> list[tuple[str, int]]:
        """Up to `count` (user_id, score) pairs, highest score first."""
        if count <= 0:
            return []
        rows = await self.store.zrange_desc(
            Keys.leaderboard(community_id), 0, count - 1
        )
        return [(member, int(score)) for member, score in rows]

    async def clear(self, community_id: str) -> None:
        await self.store.delete(Keys.leaderboard(community_id))
