"""Unit tests for core.config module.

Tests cover:
- Settings model_validator production checks
- storage backend selection
- moderator allowlist normalization
- get_settings / clear_settings_cache lru_cache behavior
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings


@pytest.fixture(autouse=True)
def _clear_settings():
    """Clear lru_cache between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ---------------------------------------------------------------------------
# Settings validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSettingsValidation:
    def test_debug_mode_allows_memory_store(self):
        settings = Settings(debug=True, storage_uri="memory://")
        assert settings.use_memory_store is True

    def test_prod_rejects_memory_store(self):
        with pytest.raises(ValidationError, match="must point at Redis"):
            Settings(debug=False, storage_uri="memory://", allow_memory_store=False)

    def test_prod_memory_store_with_explicit_opt_in(self):
        settings = Settings(
            debug=False, storage_uri="memory://", allow_memory_store=True
        )
        assert settings.use_memory_store is True

    def test_prod_accepts_redis(self):
        settings = Settings(debug=False, storage_uri="redis://cache:6379/0")
        assert settings.use_memory_store is False

    def test_rejects_unknown_scheme(self):
        with pytest.raises(ValidationError, match="STORAGE_URI must start with"):
            Settings(debug=True, storage_uri="postgres://db")

    def test_rejects_negative_throttle(self):
        with pytest.raises(ValidationError, match="ACTION_THROTTLE_MS"):
            Settings(debug=True, action_throttle_ms=-1)


@pytest.mark.unit
class TestModeratorUsernames:
    def test_normalizes_entries(self):
        settings = Settings(debug=True, moderator_usernames=" Alice , u/BOB,,")
        assert settings.moderator_username_set == frozenset({"alice", "bob"})

    def test_empty(self):
        settings = Settings(debug=True, moderator_usernames="")
        assert settings.moderator_username_set == frozenset()


# ---------------------------------------------------------------------------
# get_settings caching
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestGetSettings:
    def test_returns_cached_instance(self):
        assert get_settings() is get_settings()

    def test_clear_picks_up_new_environment(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_DEFAULT_LIMIT", "10")
        clear_settings_cache()
        assert get_settings().leaderboard_default_limit == 10

        monkeypatch.setenv("LEADERBOARD_DEFAULT_LIMIT", "40")
        clear_settings_cache()
        assert get_settings().leaderboard_default_limit == 40
