"""Challenge config repository.

Returns the raw stored hash; the config service parses it because missing
fields fall back to the stored template's defaults.
"""

import json

from core.store import KeyValueStore
from models import ChallengeConfig
from repositories.utils import Keys


def serialize_config(config: ChallengeConfig) -> dict[str, str]:
    return {
        "templateId": config.template_id,
        "title": config.title,
        "description": config.description,
        "badgeThresholds": json.dumps(list(config.badge_thresholds)),
        "activePostId": config.active_post_id or "",
        "timezone": config.timezone,
        "createdAt": config.created_at,
        "updatedAt": config.updated_at,
    }


class ConfigRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_raw(self, community_id: str) -> dict[str, str]:
        return await self.store.hgetall(Keys.config(community_id))

    async def save(self, community_id: str, config: ChallengeConfig) -> None:
        await self.store.hset(Keys.config(community_id), serialize_config(config))
