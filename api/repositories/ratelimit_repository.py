"""Last-attempt timestamps for throttled per-user actions."""

from enum import Enum as PyEnum

from core.store import KeyValueStore
from repositories.utils import Keys


class ThrottledAction(str, PyEnum):
    JOIN = "join"
    CHECKIN = "checkin"

    @property
    def field(self) -> str:
        return {
            ThrottledAction.JOIN: "lastJoinAttemptMs",
            ThrottledAction.CHECKIN: "lastCheckinAttemptMs",
        }[self]


class RateLimitRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_last_attempt_ms(
        self, community_id: str, user_id: str, action: ThrottledAction
    ) -> int | None:
        raw = await self.store.hget(Keys.ratelimit(community_id, user_id), action.field)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    async def record_attempt(
        self, community_id: str, user_id: str, action: ThrottledAction, now_ms: int
    ) -> None:
        await self.store.hset(
            Keys.ratelimit(community_id, user_id), {action.field: str(now_ms)}
        )
