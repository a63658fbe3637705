"""Display-name resolution for leaderboard rows.

The hosting platform owns user profiles. A resolver is plugged in on
app.state; the default one shows the user id. Results are cached briefly
per worker.
"""

from dataclasses import replace
from typing import Protocol

from core.cache import get_cached_display_name, set_cached_display_name
from core.logger import get_logger
from models import LeaderboardEntry

logger = get_logger(__name__)


class DisplayNameResolver(Protocol):
    async def resolve(self, user_id: str) -> str | None: ...


class UserIdDisplayNameResolver:
    async def resolve(self, user_id: str) -> str | None:
        return user_id


async def get_display_name(resolver: DisplayNameResolver, user_id: str) -> str:
    cached = get_cached_display_name(user_id)
    if cached is not None:
        return cached

    display_name = await resolver.resolve(user_id)
    if not display_name:
        logger.debug("display_name.unresolved", user_id=user_id)
        display_name = user_id
    set_cached_display_name(user_id, display_name)
    return display_name


async def with_display_names(
    resolver: DisplayNameResolver, entries: list[LeaderboardEntry]
) -> list[LeaderboardEntry]:
    return [
        replace(entry, display_name=await get_display_name(resolver, entry.user_id))
        for entry in entries
    ]
