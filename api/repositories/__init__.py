"""Repository layer for key-value store operations.

Repositories own the key layout and (de)serialisation of each record family.
Every method is a single store primitive or a short sequence of them; there
are no cross-key transactions, and business rules live in services.
"""

from repositories.config_repository import ConfigRepository
from repositories.dev_settings_repository import DevSettingsRepository
from repositories.leaderboard_repository import LeaderboardRepository
from repositories.ratelimit_repository import RateLimitRepository, ThrottledAction
from repositories.stats_repository import StatsRepository
from repositories.user_state_repository import UserStateRepository

__all__ = [
    "ConfigRepository",
    "DevSettingsRepository",
    "LeaderboardRepository",
    "RateLimitRepository",
    "StatsRepository",
    "ThrottledAction",
    "UserStateRepository",
]
