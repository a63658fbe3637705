"""Aggregate stats engine.

checkins_today only means something relative to last_stats_day: whenever a
read or write happens on a later day the counter is zeroed and the day is
advanced, while the all-time counters carry over.

The day-membership set is the source of truth for checkins_today. Every
check-in write overwrites the counter with the set's cardinality, so drift
from a partially failed request corrects itself on the next check-in.
participants_total has no such ground truth and is never re-derived.
"""

from dataclasses import dataclass, replace

from core.config import get_settings
from core.logger import get_logger
from core.store import KeyValueStore, StoreError
from models import AggregateStats
from repositories.stats_repository import StatsRepository

logger = get_logger(__name__)

# How many expired day sets one prune call sweeps
PRUNE_SWEEP_DAYS = 7


@dataclass(frozen=True)
class StatsRepairResult:
    day: int
    before: int
    after: int


def create_empty_stats(day: int) -> AggregateStats:
    return AggregateStats(last_stats_day=day)


def normalize_stats_day(stats: AggregateStats, day: int) -> AggregateStats:
    """Zero checkins_today and advance last_stats_day on a new day. Idempotent."""
    if stats.last_stats_day == day:
        return stats
    return replace(stats, last_stats_day=day, checkins_today=0)


def apply_stats_mutation(
    stats: AggregateStats,
    day: int,
    increment_participants: bool = False,
    increment_checkins: bool = False,
    best_streak_candidate: int | None = None,
) -> AggregateStats:
    next_stats = normalize_stats_day(stats, day)

    if increment_participants:
        next_stats = replace(
            next_stats, participants_total=next_stats.participants_total + 1
        )

    if increment_checkins:
        next_stats = replace(
            next_stats,
            checkins_today=next_stats.checkins_today + 1,
            checkins_all_time=next_stats.checkins_all_time + 1,
        )

    if (
        best_streak_candidate is not None
        and best_streak_candidate > next_stats.longest_streak_all_time
    ):
        next_stats = replace(next_stats, longest_streak_all_time=best_streak_candidate)

    return next_stats


def apply_checkin_stats_update(
    stats: AggregateStats,
    day: int,
    was_new_today: bool,
    today_set_size: int,
    best_streak_candidate: int | None = None,
) -> AggregateStats:
    """Count a check-in only if new, then trust the membership set size."""
    mutated = apply_stats_mutation(
        stats,
        day,
        increment_checkins=was_new_today,
        best_streak_candidate=best_streak_candidate,
    )
    return replace(mutated, checkins_today=max(0, today_set_size))


async def _load_for_day(
    repo: StatsRepository, community_id: str, day: int
) -> AggregateStats:
    """Stored stats normalized to `day`, persisting creation or rollover."""
    stored = await repo.get(community_id, day)
    if stored is None:
        stats = create_empty_stats(day)
        await repo.save(community_id, stats)
        return stats

    if stored.last_stats_day != day:
        await repo.set_fields(community_id, lastStatsDay=day, checkinsToday=0)
        logger.debug(
            "stats.day.rolled_over",
            community_id=community_id,
            from_day=stored.last_stats_day,
            to_day=day,
        )
    return normalize_stats_day(stored, day)


async def get_stats(
    store: KeyValueStore, community_id: str, day: int
) -> AggregateStats:
    """Read-only view for `day`; nothing is written."""
    stored = await StatsRepository(store).get(community_id, day)
    if stored is None:
        return create_empty_stats(day)
    return normalize_stats_day(stored, day)


async def record_participant_joined(
    store: KeyValueStore, community_id: str, day: int
) -> AggregateStats:
    repo = StatsRepository(store)
    stats = await _load_for_day(repo, community_id, day)
    participants_total = await repo.increment(community_id, "participantsTotal")
    next_stats = apply_stats_mutation(stats, day, increment_participants=True)
    return replace(next_stats, participants_total=participants_total)


async def record_checkin_stats(
    store: KeyValueStore,
    community_id: str,
    day: int,
    was_new_today: bool,
    today_set_size: int,
    best_streak_candidate: int | None = None,
) -> AggregateStats:
    repo = StatsRepository(store)
    stats = await _load_for_day(repo, community_id, day)
    next_stats = apply_checkin_stats_update(
        stats,
        day,
        was_new_today=was_new_today,
        today_set_size=today_set_size,
        best_streak_candidate=best_streak_candidate,
    )

    if was_new_today:
        # Atomic increment; the stored value wins over the locally computed one
        checkins_all_time = await repo.increment(community_id, "checkinsAllTime")
        next_stats = replace(next_stats, checkins_all_time=checkins_all_time)

    fields = {"checkinsToday": next_stats.checkins_today}
    if next_stats.longest_streak_all_time > stats.longest_streak_all_time:
        # Read-compare-write; a concurrent larger value may be overwritten
        # until that user's next check-in raises it again
        fields["longestStreakAllTime"] = next_stats.longest_streak_all_time
    await repo.set_fields(community_id, **fields)

    return next_stats


async def repair_checkins_today(
    store: KeyValueStore, community_id: str, day: int
) -> StatsRepairResult:
    """Force checkins_today to the day-membership set size for `day`."""
    repo = StatsRepository(store)
    stats = await _load_for_day(repo, community_id, day)
    actual = await repo.day_member_count(community_id, day)
    await repo.set_fields(community_id, checkinsToday=actual)

    result = StatsRepairResult(day=day, before=stats.checkins_today, after=actual)
    logger.info(
        "stats.repaired",
        community_id=community_id,
        day=day,
        before=result.before,
        after=result.after,
    )
    return result


async def reset_stats(
    store: KeyValueStore, community_id: str, day: int
) -> AggregateStats:
    repo = StatsRepository(store)
    await repo.clear(community_id)
    stats = create_empty_stats(day)
    await repo.save(community_id, stats)
    return stats


async def clear_day_memberships(
    store: KeyValueStore,
    community_id: str,
    through_day: int,
    retention_days: int | None = None,
) -> None:
    """Delete the day sets inside the retention window ending at `through_day`."""
    if retention_days is None:
        retention_days = get_settings().day_membership_retention_days

    first_day = max(0, through_day - retention_days + 1)
    days = list(range(first_day, through_day + 1))
    await StatsRepository(store).delete_day_sets(community_id, days)


async def prune_day_memberships(
    store: KeyValueStore,
    community_id: str,
    day: int,
    retention_days: int | None = None,
) -> None:
    """Best-effort deletion of day sets that fell out of the retention window.

    Keeps the trailing `retention_days` days (today included). Failures are
    logged and never propagate to the caller.
    """
    if retention_days is None:
        retention_days = get_settings().day_membership_retention_days

    newest_expired = day - retention_days
    days = [
        d
        for d in range(newest_expired - PRUNE_SWEEP_DAYS + 1, newest_expired + 1)
        if d >= 0
    ]
    if not days:
        return

    try:
        await StatsRepository(store).delete_day_sets(community_id, days)
    except StoreError as e:
        logger.warning(
            "stats.prune.failed",
            community_id=community_id,
            day=day,
            error=str(e),
        )
