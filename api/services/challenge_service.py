"""Challenge orchestration: join, privacy, check-in, status and reset.

Each operation is a short sequence of single-key store primitives with no
cross-key transaction. Ordering matters for check-in:

1. throttle (attempt timestamp recorded before the action runs)
2. read UserState under the current generation
3. pure streak transition, then persist UserState
4. add to the day-membership set (the idempotence gate for counters)
5. aggregate stats, retention pruning, leaderboard sync

Two concurrent check-ins by the same user for the same day can both pass
step 2; the last UserState write wins, but only one membership add is new
so counters are credited once.
"""

import math
from dataclasses import dataclass, replace

from core.config import get_settings
from core.logger import get_logger
from core.ratelimit import evaluate_action_throttle
from core.store import KeyValueStore
from models import AggregateStats, CheckInMetadata, Privacy, UserState
from repositories import (
    DevSettingsRepository,
    LeaderboardRepository,
    RateLimitRepository,
    StatsRepository,
    ThrottledAction,
    UserStateRepository,
)
from services import clock_service, leaderboard_service, stats_service
from services.clock_service import ClockReading
from services.streaks_service import apply_check_in, can_check_in, has_checked_in_on

logger = get_logger(__name__)


class NotJoinedError(Exception):
    """Raised when an action requires the user to have joined the challenge."""

    def __init__(self, community_id: str, user_id: str):
        self.community_id = community_id
        self.user_id = user_id
        super().__init__("Join the challenge first")


class InvalidPrivacyError(Exception):
    """Raised when a privacy value is neither public nor private."""

    def __init__(self, value: object):
        self.value = value
        super().__init__('privacy must be either "public" or "private"')


class RateLimitedError(Exception):
    """Raised when an action is retried inside the throttle window."""

    def __init__(self, action: ThrottledAction, retry_after_ms: int):
        self.action = action
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Too many {action.value} attempts, retry in {retry_after_ms}ms"
        )

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after_ms / 1000))


@dataclass(frozen=True)
class CheckInOutcome:
    state: UserState
    metadata: CheckInMetadata
    stats: AggregateStats
    day: int
    next_reset_ms: int


@dataclass(frozen=True)
class UserStatus:
    """Everything the "me" view needs in one read."""

    state: UserState | None
    day: int
    checked_in_today: bool
    can_check_in_today: bool
    next_reset_ms: int
    seconds_until_reset: int
    rank: int | None


def parse_privacy(value: object) -> Privacy:
    if isinstance(value, Privacy):
        return value
    try:
        return Privacy(value)
    except ValueError:
        raise InvalidPrivacyError(value) from None


async def _enforce_throttle(
    store: KeyValueStore,
    community_id: str,
    user_id: str,
    action: ThrottledAction,
    now_ms: int,
) -> None:
    repo = RateLimitRepository(store)
    last_attempt_ms = await repo.get_last_attempt_ms(community_id, user_id, action)
    decision = evaluate_action_throttle(
        now_ms, last_attempt_ms, get_settings().action_throttle_ms
    )
    if not decision.allowed:
        logger.info(
            "ratelimit.action.throttled",
            community_id=community_id,
            user_id=user_id,
            action=action.value,
            retry_after_ms=decision.retry_after_ms,
        )
        raise RateLimitedError(action, decision.retry_after_ms)

    await repo.record_attempt(community_id, user_id, action, now_ms)


async def get_user_state(
    store: KeyValueStore,
    community_id: str,
    user_id: str,
    generation: int | None = None,
) -> UserState | None:
    """None if never joined or only joined before the last reset."""
    if generation is None:
        generation = await DevSettingsRepository(store).get_generation(community_id)
    return await UserStateRepository(store).get(community_id, user_id, generation)


async def join(
    store: KeyValueStore,
    community_id: str,
    user_id: str,
    privacy: Privacy = Privacy.PUBLIC,
) -> UserState:
    """Join the challenge. Returns the existing state unchanged if already joined.

    Raises:
        RateLimitedError: if called again inside the throttle window.
    """
    reading = await clock_service.now(store, community_id)
    await _enforce_throttle(
        store, community_id, user_id, ThrottledAction.JOIN, reading.instant_ms
    )

    generation = await DevSettingsRepository(store).get_generation(community_id)
    existing = await UserStateRepository(store).get(community_id, user_id, generation)
    if existing is not None:
        return existing

    state = UserState.fresh(privacy)
    await UserStateRepository(store).save(community_id, user_id, state, generation)

    # The set add is the once-per-generation gate for the participant counter
    if await StatsRepository(store).add_participant(community_id, generation, user_id):
        await stats_service.record_participant_joined(
            store, community_id, reading.day_number
        )

    await leaderboard_service.sync_entry(store, community_id, user_id, state)

    logger.info(
        "challenge.joined",
        community_id=community_id,
        user_id=user_id,
        privacy=state.privacy.value,
        generation=generation,
    )
    return state


async def set_privacy(
    store: KeyValueStore, community_id: str, user_id: str, privacy: object
) -> UserState:
    """Raises InvalidPrivacyError before any read, NotJoinedError if not joined."""
    parsed = parse_privacy(privacy)

    generation = await DevSettingsRepository(store).get_generation(community_id)
    users = UserStateRepository(store)
    state = await users.get(community_id, user_id, generation)
    if state is None:
        raise NotJoinedError(community_id, user_id)

    updated = replace(state, privacy=parsed)
    await users.save(community_id, user_id, updated, generation)
    await leaderboard_service.sync_entry(store, community_id, user_id, updated)

    logger.info(
        "challenge.privacy.updated",
        community_id=community_id,
        user_id=user_id,
        privacy=parsed.value,
    )
    return updated


async def record_check_in(
    store: KeyValueStore, community_id: str, user_id: str
) -> CheckInOutcome:
    """Check in for the community's effective day.

    Raises:
        RateLimitedError: inside the throttle window.
        NotJoinedError: no current-generation UserState.
        AlreadyCheckedInError: effective day at or before the last check-in.
    """
    reading = await clock_service.now(store, community_id)
    await _enforce_throttle(
        store, community_id, user_id, ThrottledAction.CHECKIN, reading.instant_ms
    )

    day = reading.day_number
    generation = await DevSettingsRepository(store).get_generation(community_id)
    users = UserStateRepository(store)
    state = await users.get(community_id, user_id, generation)
    if state is None:
        raise NotJoinedError(community_id, user_id)

    result = apply_check_in(state, day)
    await users.save(community_id, user_id, result.state, generation)

    stats_repo = StatsRepository(store)
    was_new_today = await stats_repo.add_day_member(community_id, day, user_id)
    today_set_size = await stats_repo.day_member_count(community_id, day)
    stats = await stats_service.record_checkin_stats(
        store,
        community_id,
        day,
        was_new_today=was_new_today,
        today_set_size=today_set_size,
        best_streak_candidate=result.state.best_streak,
    )
    await stats_service.prune_day_memberships(store, community_id, day)
    await leaderboard_service.sync_entry(store, community_id, user_id, result.state)

    logger.info(
        "checkin.recorded",
        community_id=community_id,
        user_id=user_id,
        day=day,
        current_streak=result.state.current_streak,
        used_freeze=result.metadata.used_freeze,
        earned_freeze=result.metadata.earned_freeze,
        earned_badge=result.metadata.earned_badge,
        was_new_today=was_new_today,
    )
    return CheckInOutcome(
        state=result.state,
        metadata=result.metadata,
        stats=stats,
        day=day,
        next_reset_ms=reading.next_reset_ms,
    )


async def get_status(
    store: KeyValueStore, community_id: str, user_id: str
) -> UserStatus:
    reading = await clock_service.now(store, community_id)
    generation = await DevSettingsRepository(store).get_generation(community_id)
    state = await UserStateRepository(store).get(community_id, user_id, generation)

    rank = None
    if state is not None and state.privacy == Privacy.PUBLIC:
        rank = await leaderboard_service.get_rank(
            store, community_id, user_id, generation
        )

    return UserStatus(
        state=state,
        day=reading.day_number,
        checked_in_today=has_checked_in_on(state, reading.day_number),
        can_check_in_today=(
            state is not None and can_check_in(state, reading.day_number)
        ),
        next_reset_ms=reading.next_reset_ms,
        seconds_until_reset=reading.seconds_until_reset,
        rank=rank,
    )


async def reset_community(
    store: KeyValueStore, community_id: str
) -> tuple[int, ClockReading]:
    """Fence out all user state, clear the index and stats, zero the clock offset.

    Day-membership sets are not generation-scoped, so the ones around both the
    pre-reset effective day and the post-reset wall day are deleted.

    Returns the new generation and the clock reading after the reset.
    """
    before = await clock_service.now(store, community_id)
    generation = await DevSettingsRepository(store).increment_generation(community_id)
    await LeaderboardRepository(store).clear(community_id)
    reading = await clock_service.set_offset_seconds(store, community_id, 0)
    for day in sorted({before.day_number, reading.day_number}):
        await stats_service.clear_day_memberships(store, community_id, day)
    await stats_service.reset_stats(store, community_id, reading.day_number)

    logger.warning(
        "community.reset",
        community_id=community_id,
        generation=generation,
    )
    return generation, reading
