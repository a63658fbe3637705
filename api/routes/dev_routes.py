"""Dev and moderator tooling: virtual clock, community reset, stats repair.

The clock and reset endpoints only exist (otherwise 404) when
DEV_TOOLS_ENABLED is set. Stats repair is a moderator audit tool and is
available regardless.
"""

from fastapi import APIRouter, Depends, Request

from core import get_logger
from core.auth import CommunityId, ModeratorIdentity, require_dev_tools
from core.ratelimit import ADMIN_LIMIT, limiter
from core.store import Store
from schemas import (
    ClockResponse,
    DevTimeRequest,
    ResetResponse,
    StatsRepairResponse,
)
from services import challenge_service, clock_service, stats_service
from services.clock_service import ClockReading

logger = get_logger(__name__)

router = APIRouter(prefix="/api/dev", tags=["dev"])


def _clock_response(reading: ClockReading) -> ClockResponse:
    return ClockResponse(
        server_utc_now_ms=reading.wall_instant_ms,
        utc_day_number_now=reading.wall_day_number,
        dev_time_offset_seconds=reading.offset_seconds,
        effective_day_number=reading.day_number,
        seconds_until_reset=reading.seconds_until_reset,
        next_reset_utc_ms=reading.next_reset_ms,
    )


@router.get(
    "/time",
    response_model=ClockResponse,
    dependencies=[Depends(require_dev_tools)],
)
async def get_dev_time(community_id: CommunityId, store: Store) -> ClockResponse:
    reading = await clock_service.now(store, community_id)
    return _clock_response(reading)


@router.post(
    "/time",
    response_model=ClockResponse,
    dependencies=[Depends(require_dev_tools)],
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Moderator access required"},
    },
)
@limiter.limit(ADMIN_LIMIT)
async def set_dev_time(
    request: Request,
    body: DevTimeRequest,
    identity: ModeratorIdentity,
    store: Store,
) -> ClockResponse:
    """Shift the community's effective clock. Stored days are untouched."""
    reading = await clock_service.set_offset_seconds(
        store, identity.community_id, body.dev_time_offset_seconds
    )
    return _clock_response(reading)


@router.post(
    "/reset",
    response_model=ResetResponse,
    dependencies=[Depends(require_dev_tools)],
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Moderator access required"},
    },
)
@limiter.limit(ADMIN_LIMIT)
async def reset_progress(
    request: Request, identity: ModeratorIdentity, store: Store
) -> ResetResponse:
    """Start the challenge over for everyone in the community."""
    generation, reading = await challenge_service.reset_community(
        store, identity.community_id
    )
    logger.warning(
        "dev.reset.requested",
        community_id=identity.community_id,
        requested_by=identity.username,
    )
    return ResetResponse(state_generation=generation, clock=_clock_response(reading))


@router.post(
    "/stats/repair",
    response_model=StatsRepairResponse,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Moderator access required"},
    },
)
@limiter.limit(ADMIN_LIMIT)
async def repair_stats(
    request: Request, identity: ModeratorIdentity, store: Store
) -> StatsRepairResponse:
    """Recompute today's check-in count from the day-membership set."""
    day = await clock_service.today(store, identity.community_id)
    result = await stats_service.repair_checkins_today(
        store, identity.community_id, day
    )
    return StatsRepairResponse(
        day_number=result.day, before=result.before, after=result.after
    )
