"""Tests for services/stats_service.py.

Pure helpers are tested directly; store-backed functions use MemoryStore.
"""

from dataclasses import replace

import pytest

from core.store import MemoryStore, StoreError
from models import AggregateStats
from repositories import StatsRepository
from services import stats_service
from services.stats_service import (
    apply_checkin_stats_update,
    apply_stats_mutation,
    create_empty_stats,
    normalize_stats_day,
)


def _stats(**overrides) -> AggregateStats:
    return replace(create_empty_stats(10), **overrides)


@pytest.mark.unit
class TestNormalizeStatsDay:
    def test_same_day_unchanged(self):
        stats = _stats(checkins_today=4)
        assert normalize_stats_day(stats, 10) is stats

    def test_new_day_zeroes_today_and_keeps_all_time(self):
        stats = _stats(
            checkins_today=4,
            checkins_all_time=40,
            participants_total=3,
            longest_streak_all_time=9,
        )

        normalized = normalize_stats_day(stats, 11)

        assert normalized.last_stats_day == 11
        assert normalized.checkins_today == 0
        assert normalized.checkins_all_time == 40
        assert normalized.participants_total == 3
        assert normalized.longest_streak_all_time == 9

    def test_idempotent(self):
        once = normalize_stats_day(_stats(checkins_today=4), 12)
        assert normalize_stats_day(once, 12) == once


@pytest.mark.unit
class TestApplyStatsMutation:
    def test_increment_participants(self):
        result = apply_stats_mutation(_stats(), 10, increment_participants=True)
        assert result.participants_total == 1

    def test_increment_checkins(self):
        result = apply_stats_mutation(
            _stats(checkins_today=2), 10, increment_checkins=True
        )
        assert result.checkins_today == 3
        assert result.checkins_all_time == 1

    def test_longest_only_grows(self):
        stats = _stats(longest_streak_all_time=5)
        lower = apply_stats_mutation(stats, 10, best_streak_candidate=3)
        higher = apply_stats_mutation(stats, 10, best_streak_candidate=8)
        assert lower.longest_streak_all_time == 5
        assert higher.longest_streak_all_time == 8

    def test_normalizes_before_mutating(self):
        result = apply_stats_mutation(
            _stats(checkins_today=7), 11, increment_checkins=True
        )
        assert result.checkins_today == 1


@pytest.mark.unit
class TestApplyCheckinStatsUpdate:
    def test_new_check_in_counts_and_uses_set_size(self):
        result = apply_checkin_stats_update(_stats(), 10, True, 5)
        assert result.checkins_all_time == 1
        assert result.checkins_today == 5

    def test_duplicate_does_not_count(self):
        result = apply_checkin_stats_update(
            _stats(checkins_today=1, checkins_all_time=1), 10, False, 1
        )
        assert result.checkins_all_time == 1
        assert result.checkins_today == 1

    def test_negative_set_size_clamped(self):
        result = apply_checkin_stats_update(_stats(), 10, False, -3)
        assert result.checkins_today == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestStoreBackedStats:
    async def test_get_stats_empty_community(self):
        stats = await stats_service.get_stats(MemoryStore(), "c1", 50)
        assert stats == create_empty_stats(50)

    async def test_record_checkin_stats_rolls_over(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        await repo.save("c1", _stats(checkins_today=3, checkins_all_time=3))
        await repo.add_day_member("c1", 11, "u1")

        stats = await stats_service.record_checkin_stats(
            store,
            "c1",
            11,
            was_new_today=True,
            today_set_size=1,
            best_streak_candidate=2,
        )

        assert stats.last_stats_day == 11
        assert stats.checkins_today == 1
        assert stats.checkins_all_time == 4
        assert stats.longest_streak_all_time == 2
        assert await repo.get("c1", 11) == stats

    async def test_record_checkin_stats_overwrites_drift(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        await repo.save("c1", _stats(checkins_today=9, checkins_all_time=9))

        stats = await stats_service.record_checkin_stats(
            store, "c1", 10, was_new_today=False, today_set_size=2
        )

        assert stats.checkins_today == 2
        assert stats.checkins_all_time == 9

    async def test_record_checkin_stats_matches_pure_update(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        stored = _stats(
            checkins_today=5, checkins_all_time=12, longest_streak_all_time=4
        )
        await repo.save("c1", stored)

        stats = await stats_service.record_checkin_stats(
            store,
            "c1",
            10,
            was_new_today=True,
            today_set_size=6,
            best_streak_candidate=9,
        )

        expected = apply_checkin_stats_update(
            stored, 10, was_new_today=True, today_set_size=6, best_streak_candidate=9
        )
        assert stats == expected
        assert await repo.get("c1", 10) == expected

    async def test_clear_day_memberships_covers_retention_window(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        for day in (70, 71, 99, 100):
            await repo.add_day_member("c1", day, "u1")

        await stats_service.clear_day_memberships(store, "c1", 100, retention_days=30)

        assert await repo.day_member_count("c1", 70) == 1
        assert await repo.day_member_count("c1", 71) == 0
        assert await repo.day_member_count("c1", 100) == 0

    async def test_repair_reports_before_and_after(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        await repo.save("c1", _stats(checkins_today=7, participants_total=4))
        await repo.add_day_member("c1", 10, "u1")
        await repo.add_day_member("c1", 10, "u2")

        result = await stats_service.repair_checkins_today(store, "c1", 10)

        assert (result.before, result.after) == (7, 2)
        stats = await stats_service.get_stats(store, "c1", 10)
        assert stats.checkins_today == 2
        # Participants are never re-derived
        assert stats.participants_total == 4

    async def test_record_participant_joined_uses_atomic_increment(self):
        store = MemoryStore()
        await stats_service.record_participant_joined(store, "c1", 10)
        stats = await stats_service.record_participant_joined(store, "c1", 10)
        assert stats.participants_total == 2

    async def test_prune_deletes_only_expired_days(self):
        store = MemoryStore()
        repo = StatsRepository(store)
        for day in (60, 69, 70, 71, 100):
            await repo.add_day_member("c1", day, "u1")

        await stats_service.prune_day_memberships(store, "c1", 100, retention_days=30)

        assert await repo.day_member_count("c1", 70) == 0
        assert await repo.day_member_count("c1", 69) == 0
        assert await repo.day_member_count("c1", 71) == 1
        assert await repo.day_member_count("c1", 100) == 1
        # Outside the sweep; picked up by an earlier day's prune
        assert await repo.day_member_count("c1", 60) == 1

    async def test_prune_failure_is_swallowed(self, monkeypatch):
        store = MemoryStore()

        async def _fail(*keys):
            raise StoreError("delete", RuntimeError("boom"))

        monkeypatch.setattr(store, "delete", _fail)

        await stats_service.prune_day_memberships(store, "c1", 100, retention_days=30)

    async def test_prune_near_epoch_is_noop(self):
        await stats_service.prune_day_memberships(
            MemoryStore(), "c1", 5, retention_days=30
        )
