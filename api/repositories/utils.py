"""Key layout and field parsing shared by the repositories.

Records are stored as flat string hashes. Older records may miss fields
added later, so every reader parses with an explicit fallback instead of
assuming presence.
"""

import json

UNSET_DAY = "-1"


class Keys:
    """Logical key names. The store applies any configured prefix."""

    @staticmethod
    def config(community_id: str) -> str:
        return f"config:{community_id}"

    @staticmethod
    def user(community_id: str, user_id: str) -> str:
        return f"user:{community_id}:{user_id}"

    @staticmethod
    def leaderboard(community_id: str) -> str:
        return f"leaderboard:{community_id}"

    @staticmethod
    def stats(community_id: str) -> str:
        return f"stats:{community_id}"

    @staticmethod
    def today(community_id: str, day: int) -> str:
        return f"today:{community_id}:{day}"

    @staticmethod
    def dev_settings(community_id: str) -> str:
        return f"devsettings:{community_id}"

    @staticmethod
    def ratelimit(community_id: str, user_id: str) -> str:
        return f"ratelimit:{community_id}:{user_id}"


def parse_non_negative_int(value: str | None, fallback: int = 0) -> int:
    if not value:
        return fallback
    try:
        parsed = int(value)
    except ValueError:
        return fallback
    return parsed if parsed >= 0 else fallback


def parse_int(value: str | None, fallback: int = 0) -> int:
    """Signed integer (offsets may be negative)."""
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        return fallback


def to_day_storage(day: int | None) -> str:
    return UNSET_DAY if day is None else str(day)


def from_day_storage(value: str | None) -> int | None:
    if not value or value == UNSET_DAY:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None


def parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.strip().lower() in ("1", "true", "yes")


def dump_bool(value: bool) -> str:
    return "1" if value else "0"


def parse_json_list(value: str | None) -> list | None:
    """Decoded JSON array, or None when missing or malformed."""
    if not value:
        return None
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, list) else None
