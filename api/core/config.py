"""Application configuration using pydantic-settings."""

from functools import cached_property, lru_cache
from typing import Self

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Key-value store backing all challenge state.
    # "memory://" keeps everything in-process (tests, local dev).
    # Use "redis://host:port/db" for anything shared between workers.
    storage_uri: str = "memory://"
    # Optional namespace prepended to every key (e.g. "streaks:")
    key_prefix: str = ""
    # Production refuses memory:// unless this is explicitly set
    allow_memory_store: bool = False

    # Minimum gap between two join/check-in attempts by the same user
    action_throttle_ms: int = 2000

    # Day-membership sets older than this are pruned opportunistically
    day_membership_retention_days: int = 30

    leaderboard_default_limit: int = 25
    leaderboard_max_limit: int = 100

    # Comma-separated usernames allowed to change config and use dev tools.
    # Example: "alice,u/bob"
    moderator_usernames: str = ""

    # Enables /api/dev/* (virtual clock offset, community reset)
    dev_tools_enabled: bool = False

    # slowapi storage for the coarse per-identity HTTP limit
    ratelimit_storage_uri: str = "memory://"

    display_name_cache_ttl_seconds: int = 60

    # Feature flags - production defaults (fail-safe)
    # Set DEBUG=true in .env for local development
    debug: bool = False
    enable_docs: bool = False

    @model_validator(mode="after")
    def validate_config(self) -> Self:
        if not self.storage_uri.startswith(("memory://", "redis://", "rediss://")):
            raise ValueError(
                "STORAGE_URI must start with memory://, redis:// or rediss://"
            )

        if self.action_throttle_ms < 0:
            raise ValueError("ACTION_THROTTLE_MS cannot be negative")

        # In production (debug=False), state must survive restarts
        if not self.debug and self.use_memory_store and not self.allow_memory_store:
            raise ValueError(
                "STORAGE_URI must point at Redis in production. "
                "Set DEBUG=true or ALLOW_MEMORY_STORE=true to use memory://."
            )
        return self

    @property
    def use_memory_store(self) -> bool:
        return self.storage_uri.startswith("memory://")

    @cached_property
    def moderator_username_set(self) -> frozenset[str]:
        """Normalized moderator usernames (lowercase, without "u/" prefix)."""
        from core.auth import normalize_username

        entries = self.moderator_usernames.split(",")
        names = (normalize_username(entry) for entry in entries)
        return frozenset(name for name in names if name)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this in tests to reset settings between test cases.
    After clearing, the next get_settings() call will create
    a fresh Settings instance with current environment variables.

    Example:
        def test_something(monkeypatch):
            monkeypatch.setenv("DEV_TOOLS_ENABLED", "true")
            clear_settings_cache()
            settings = get_settings()  # Fresh instance
    """
    get_settings.cache_clear()
