"""Dev settings repository: virtual clock offset and state generation."""

from core.store import KeyValueStore
from repositories.utils import Keys, parse_int, parse_non_negative_int

OFFSET_FIELD = "devTimeOffsetSeconds"
GENERATION_FIELD = "stateGeneration"


class DevSettingsRepository:
    """Per-community dev settings hash."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_offset_seconds(self, community_id: str) -> int:
        raw = await self.store.hget(Keys.dev_settings(community_id), OFFSET_FIELD)
        return parse_int(raw)

    async def set_offset_seconds(self, community_id: str, offset_seconds: int) -> None:
        await self.store.hset(
            Keys.dev_settings(community_id), {OFFSET_FIELD: str(offset_seconds)}
        )

    async def get_generation(self, community_id: str) -> int:
        raw = await self.store.hget(Keys.dev_settings(community_id), GENERATION_FIELD)
        return parse_non_negative_int(raw)

    async def increment_generation(self, community_id: str) -> int:
        """Atomic bump; returns the new generation."""
        return await self.store.hincrby(
            Keys.dev_settings(community_id), GENERATION_FIELD, 1
        )
