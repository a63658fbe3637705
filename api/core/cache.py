"""In-memory TTL caching utilities.

Display names come from an external resolver and change rarely, so they are
cached per worker for a short TTL. Cache is per-worker/replica, not shared
across instances.
"""

from cachetools import TTLCache

from core.config import get_settings

DEFAULT_MAX_SIZE = 5000

# Keyed by user_id
_display_name_cache: TTLCache[str, str] = TTLCache(
    maxsize=DEFAULT_MAX_SIZE,
    ttl=get_settings().display_name_cache_ttl_seconds,
)


def get_cached_display_name(user_id: str) -> str | None:
    return _display_name_cache.get(user_id)


def set_cached_display_name(user_id: str, display_name: str) -> None:
    _display_name_cache[user_id] = display_name


def clear_all_caches() -> None:
    """For testing."""
    _display_name_cache.clear()


def get_cache_stats() -> dict[str, dict[str, int]]:
    return {
        "display_name_cache": {
            "current_size": len(_display_name_cache),
            "max_size": int(_display_name_cache.maxsize),
        },
    }
