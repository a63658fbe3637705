"""Tests for challenge_service against an in-memory store.

Covers join idempotence, generation fencing, check-in orchestration,
privacy, status and throttling.
"""

import pytest

from core.config import clear_settings_cache
from models import Privacy
from repositories import LeaderboardRepository, StatsRepository, UserStateRepository
from services import challenge_service, stats_service
from services.challenge_service import (
    InvalidPrivacyError,
    NotJoinedError,
    RateLimitedError,
)
from services.streaks_service import AlreadyCheckedInError

pytestmark = pytest.mark.asyncio


class TestJoin:
    """Test join()."""

    async def test_creates_zeroed_state(self, store, community_id):
        state = await challenge_service.join(store, community_id, "u1")

        assert state.current_streak == 0
        assert state.last_checkin_day_utc is None
        assert state.privacy == Privacy.PUBLIC
        assert state.is_participant is True

    async def test_idempotent_and_counts_participant_once(
        self, store, community_id, move_to_day
    ):
        await move_to_day(500)
        first = await challenge_service.join(store, community_id, "u1")
        second = await challenge_service.join(store, community_id, "u1")

        assert second == first
        stats = await stats_service.get_stats(store, community_id, 500)
        assert stats.participants_total == 1

    async def test_public_join_enters_leaderboard_index(self, store, community_id):
        await challenge_service.join(store, community_id, "u1")
        assert await LeaderboardRepository(store).top(community_id, 10) == [("u1", 0)]

    async def test_private_join_stays_out_of_index(self, store, community_id):
        await challenge_service.join(store, community_id, "u1", Privacy.PRIVATE)
        assert await LeaderboardRepository(store).top(community_id, 10) == []


class TestRecordCheckIn:
    """Test record_check_in()."""

    async def test_requires_join(self, store, community_id):
        with pytest.raises(NotJoinedError):
            await challenge_service.record_check_in(store, community_id, "u1")

    async def test_first_check_in(self, store, community_id, move_to_day):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")

        outcome = await challenge_service.record_check_in(store, community_id, "u1")

        assert outcome.day == 100
        assert outcome.state.current_streak == 1
        assert outcome.stats.checkins_today == 1
        assert outcome.stats.checkins_all_time == 1
        assert outcome.stats.longest_streak_all_time == 1
        assert outcome.next_reset_ms == 101 * 86_400_000

    async def test_persists_state_and_index(self, store, community_id, move_to_day):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        state = await challenge_service.get_user_state(store, community_id, "u1")
        assert state is not None
        assert state.last_checkin_day_utc == 100
        assert await LeaderboardRepository(store).top(community_id, 10) == [("u1", 1)]
        assert await StatsRepository(store).day_member_count(community_id, 100) == 1

    async def test_same_day_conflict_leaves_counters(
        self, store, community_id, move_to_day
    ):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        with pytest.raises(AlreadyCheckedInError) as exc_info:
            await challenge_service.record_check_in(store, community_id, "u1")

        assert exc_info.value.code == "ALREADY_CHECKED_IN"
        stats = await stats_service.get_stats(store, community_id, 100)
        assert stats.checkins_all_time == 1
        assert stats.checkins_today == 1

    async def test_offset_moved_back_gives_past_effective_day(
        self, store, community_id, move_to_day
    ):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")
        await move_to_day(99)

        with pytest.raises(AlreadyCheckedInError) as exc_info:
            await challenge_service.record_check_in(store, community_id, "u1")
        assert exc_info.value.code == "PAST_EFFECTIVE_DAY"

    async def test_streak_over_consecutive_days(self, store, community_id, move_to_day):
        await challenge_service.join(store, community_id, "u1")
        for day in range(0, 7):
            await move_to_day(1000 + day)
            outcome = await challenge_service.record_check_in(store, community_id, "u1")

        assert outcome.state.current_streak == 7
        assert outcome.metadata.earned_badge == "Committed"
        assert outcome.metadata.earned_freeze is True
        assert outcome.stats.checkins_all_time == 7
        assert outcome.stats.checkins_today == 1

    async def test_day_rollover_resets_today_counter(
        self, store, community_id, move_to_day
    ):
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.join(store, community_id, "u2")
        await move_to_day(200)
        await challenge_service.record_check_in(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u2")
        await move_to_day(201)

        stats = await stats_service.get_stats(store, community_id, 201)
        assert stats.checkins_today == 0
        assert stats.checkins_all_time == 2

    async def test_prunes_expired_day_sets(self, store, community_id, move_to_day):
        await StatsRepository(store).add_day_member(community_id, 170, "old")
        await challenge_service.join(store, community_id, "u1")
        await move_to_day(200)
        await challenge_service.record_check_in(store, community_id, "u1")

        assert await StatsRepository(store).day_member_count(community_id, 170) == 0
        assert await StatsRepository(store).day_member_count(community_id, 200) == 1


class TestSetPrivacy:
    """Test set_privacy()."""

    async def test_invalid_value(self, store, community_id):
        with pytest.raises(InvalidPrivacyError):
            await challenge_service.set_privacy(store, community_id, "u1", "hidden")

    async def test_requires_join(self, store, community_id):
        with pytest.raises(NotJoinedError):
            await challenge_service.set_privacy(store, community_id, "u1", "private")

    async def test_private_removes_from_index(self, store, community_id):
        await challenge_service.join(store, community_id, "u1")

        state = await challenge_service.set_privacy(
            store, community_id, "u1", "private"
        )

        assert state.privacy == Privacy.PRIVATE
        assert await LeaderboardRepository(store).top(community_id, 10) == []

    async def test_public_again_restores_index(self, store, community_id):
        await challenge_service.join(store, community_id, "u1", Privacy.PRIVATE)
        await challenge_service.set_privacy(store, community_id, "u1", "public")
        assert await LeaderboardRepository(store).top(community_id, 10) == [("u1", 0)]


class TestResetCommunity:
    """Test reset_community() generation fencing."""

    async def test_fences_out_prior_state(self, store, community_id, move_to_day):
        await move_to_day(300)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        generation, reading = await challenge_service.reset_community(
            store, community_id
        )

        assert generation == 1
        assert reading.offset_seconds == 0
        assert await challenge_service.get_user_state(store, community_id, "u1") is None
        assert await LeaderboardRepository(store).top(community_id, 10) == []
        stats = await stats_service.get_stats(store, community_id, reading.day_number)
        assert stats.participants_total == 0
        assert stats.checkins_all_time == 0

    async def test_same_day_check_in_after_reset_starts_fresh_stats(
        self, store, community_id
    ):
        for user_id in ("u1", "u2", "u3"):
            await challenge_service.join(store, community_id, user_id)
            await challenge_service.record_check_in(store, community_id, user_id)

        await challenge_service.reset_community(store, community_id)
        await challenge_service.join(store, community_id, "u1")
        outcome = await challenge_service.record_check_in(store, community_id, "u1")

        assert outcome.stats.participants_total == 1
        assert outcome.stats.checkins_today == 1
        assert outcome.stats.checkins_all_time == 1
        day_members = await StatsRepository(store).day_member_count(
            community_id, outcome.day
        )
        assert day_members == 1

    async def test_clears_day_sets_of_shifted_day(
        self, store, community_id, move_to_day
    ):
        await move_to_day(300)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        await challenge_service.reset_community(store, community_id)

        assert await StatsRepository(store).day_member_count(community_id, 300) == 0

    async def test_raw_record_survives_but_is_invisible(self, store, community_id):
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.reset_community(store, community_id)

        assert await UserStateRepository(store).get(community_id, "u1", 0) is not None
        assert await UserStateRepository(store).get(community_id, "u1", 1) is None

    async def test_rejoin_counts_participant_again(self, store, community_id):
        await challenge_service.join(store, community_id, "u1")
        _, reading = await challenge_service.reset_community(store, community_id)

        await challenge_service.join(store, community_id, "u1")

        stats = await stats_service.get_stats(store, community_id, reading.day_number)
        assert stats.participants_total == 1


class TestGetStatus:
    """Test get_status()."""

    async def test_not_joined(self, store, community_id):
        status = await challenge_service.get_status(store, community_id, "u1")

        assert status.state is None
        assert status.can_check_in_today is False
        assert status.rank is None

    async def test_after_check_in(self, store, community_id, move_to_day):
        await move_to_day(400)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        status = await challenge_service.get_status(store, community_id, "u1")

        assert status.checked_in_today is True
        assert status.can_check_in_today is False
        assert status.rank == 1
        assert status.day == 400

    async def test_private_user_has_no_rank(self, store, community_id):
        await challenge_service.join(store, community_id, "u1", Privacy.PRIVATE)
        status = await challenge_service.get_status(store, community_id, "u1")
        assert status.rank is None


class TestActionThrottle:
    """Test the per-user throttle on join and check-in."""

    @pytest.fixture(autouse=True)
    def _enable_throttle(self, monkeypatch):
        monkeypatch.setenv("ACTION_THROTTLE_MS", "2000")
        clear_settings_cache()

    async def test_second_check_in_inside_window_is_throttled(
        self, store, community_id, move_to_day
    ):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")

        with pytest.raises(RateLimitedError) as exc_info:
            await challenge_service.record_check_in(store, community_id, "u1")

        assert 0 < exc_info.value.retry_after_ms <= 2000
        assert exc_info.value.retry_after_seconds in (1, 2)

    async def test_join_and_check_in_throttled_independently(
        self, store, community_id
    ):
        await challenge_service.join(store, community_id, "u1")
        outcome = await challenge_service.record_check_in(store, community_id, "u1")
        assert outcome.state.current_streak == 1

    async def test_offset_jump_forward_clears_window(
        self, store, community_id, move_to_day
    ):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await challenge_service.record_check_in(store, community_id, "u1")
        await move_to_day(101)

        outcome = await challenge_service.record_check_in(store, community_id, "u1")
        assert outcome.state.current_streak == 2

    async def test_offset_jump_backward_self_heals(
        self, store, community_id, move_to_day
    ):
        await move_to_day(100)
        await challenge_service.join(store, community_id, "u1")
        await move_to_day(90)

        # Last attempt lies in the future; allowed, returns existing state
        state = await challenge_service.join(store, community_id, "u1")
        assert state.current_streak == 0
