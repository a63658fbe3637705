"""Streak state machine - pure functions, no store access.

SOURCE OF TRUTH for check-in transitions:
- One check-in per UTC day; a day at or before the last check-in is rejected
- Consecutive day (gap of 1) continues the streak
- Gap of exactly 2 (one missed day) continues only by spending a freeze token
- Gap of 3+ always restarts at 1; tokens are neither spent nor lost
- Every 7th streak day banks a freeze token, capped at MAX_FREEZE_TOKENS
- Milestone badges are appended once, in earned order
"""

from dataclasses import dataclass, replace

from models import CheckInMetadata, UserState
from services.badges_service import milestone_badge_for

MAX_FREEZE_TOKENS = 2
FREEZE_EARN_INTERVAL = 7
FREEZE_COVERED_GAP = 2


class StateConflictError(Exception):
    """Raised when an action conflicts with the stored state."""

    pass


class AlreadyCheckedInError(StateConflictError):
    """Raised when checking in for a day at or before the last check-in.

    code is ALREADY_CHECKED_IN for a same-day resubmission and
    PAST_EFFECTIVE_DAY when the day is earlier than the last check-in
    (e.g. after moving the virtual clock backwards).
    """

    def __init__(self, state: UserState, day: int):
        self.state = state
        self.day = day
        if state.last_checkin_day_utc == day:
            self.code = "ALREADY_CHECKED_IN"
            message = "Already checked in for this UTC day"
        else:
            self.code = "PAST_EFFECTIVE_DAY"
            message = (
                f"Day {day} is earlier than the last check-in "
                f"({state.last_checkin_day_utc})"
            )
        super().__init__(message)


@dataclass(frozen=True)
class CheckInResult:
    state: UserState
    metadata: CheckInMetadata


def can_check_in(state: UserState, day: int) -> bool:
    last = state.last_checkin_day_utc
    return last is None or day > last


def has_checked_in_on(state: UserState | None, day: int) -> bool:
    return state is not None and state.last_checkin_day_utc == day


def apply_check_in(state: UserState, day: int) -> CheckInResult:
    """Compute the state after checking in on `day`.

    Raises:
        AlreadyCheckedInError: if `day` is not after the last check-in.
    """
    if not can_check_in(state, day):
        raise AlreadyCheckedInError(state, day)

    last = state.last_checkin_day_utc
    missed_days = day - last if last is not None else 0

    freeze_tokens = state.freeze_tokens
    freeze_saves = state.freeze_saves
    used_freeze = False
    if missed_days == FREEZE_COVERED_GAP and freeze_tokens > 0:
        freeze_tokens -= 1
        freeze_saves += 1
        used_freeze = True

    has_trackable_streak = (
        state.streak_start_day_utc is not None and state.current_streak > 0
    )
    continues = (missed_days == 1 or used_freeze) and has_trackable_streak

    if continues:
        current_streak = state.current_streak + 1
        streak_start = state.streak_start_day_utc
    else:
        current_streak = 1
        streak_start = day

    earned_freeze = False
    if current_streak % FREEZE_EARN_INTERVAL == 0 and freeze_tokens < MAX_FREEZE_TOKENS:
        freeze_tokens += 1
        earned_freeze = True

    earned_badge = milestone_badge_for(current_streak, state.badges)
    badges = state.badges + (earned_badge,) if earned_badge else state.badges

    next_state = replace(
        state,
        current_streak=current_streak,
        best_streak=max(state.best_streak, current_streak),
        streak_start_day_utc=streak_start,
        last_checkin_day_utc=day,
        freeze_tokens=freeze_tokens,
        freeze_saves=freeze_saves,
        badges=badges,
    )
    return CheckInResult(
        state=next_state,
        metadata=CheckInMetadata(
            used_freeze=used_freeze,
            earned_freeze=earned_freeze,
            token_count=freeze_tokens,
            earned_badge=earned_badge,
        ),
    )
