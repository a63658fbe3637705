"""Challenge endpoints: config, join, privacy, check-in, me, leaderboard, stats.

Domain errors carry a machine-readable code so the client can react
(e.g. re-render from the returned state on a check-in conflict).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.auth import CommunityId, CurrentIdentity, ModeratorIdentity
from core.config import get_settings
from core.ratelimit import ACTION_LIMIT, ADMIN_LIMIT, limiter
from core.store import Store
from schemas import (
    ActivePostRequest,
    ChallengeConfigResponse,
    CheckInConflictResponse,
    CheckInMetadataResponse,
    CheckInResponse,
    ConfigEnvelope,
    ConfigUpdateRequest,
    ErrorDetail,
    ErrorResponse,
    JoinRequest,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    MeResponse,
    PrivacyRequest,
    StateEnvelope,
    StatsResponse,
    TemplateResponse,
    TemplatesResponse,
    UserStateResponse,
)
from services import (
    challenge_service,
    clock_service,
    config_service,
    leaderboard_service,
    stats_service,
)
from services.challenge_service import (
    InvalidPrivacyError,
    NotJoinedError,
    RateLimitedError,
)
from services.config_service import (
    ConfigValidationError,
    TemplateChangeConfirmRequiredError,
)
from services.display_names_service import DisplayNameResolver, with_display_names
from services.streaks_service import AlreadyCheckedInError
from services.templates_service import TEMPLATES

router = APIRouter(prefix="/api", tags=["challenge"])


def get_display_name_resolver(request: Request) -> DisplayNameResolver:
    return request.app.state.display_name_resolver


Resolver = Annotated[DisplayNameResolver, Depends(get_display_name_resolver)]


def _error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


def _rate_limited(e: RateLimitedError) -> JSONResponse:
    return _error(
        429,
        "RATE_LIMITED",
        str(e),
        headers={"Retry-After": str(e.retry_after_seconds)},
    )


def _not_joined(e: NotJoinedError) -> JSONResponse:
    return _error(403, "JOIN_REQUIRED", str(e))


def parse_leaderboard_limit(raw: str | None) -> int:
    """Positive integers are clamped to the max; anything else is the default."""
    settings = get_settings()
    try:
        parsed = int(raw) if raw is not None else settings.leaderboard_default_limit
    except ValueError:
        return settings.leaderboard_default_limit
    if parsed <= 0:
        return settings.leaderboard_default_limit
    return min(parsed, settings.leaderboard_max_limit)


@router.get("/templates", response_model=TemplatesResponse)
async def list_templates() -> TemplatesResponse:
    return TemplatesResponse(
        templates=[TemplateResponse(**template) for template in TEMPLATES]
    )


@router.get("/config", response_model=ConfigEnvelope)
@limiter.limit(ACTION_LIMIT)
async def get_config(
    request: Request, community_id: CommunityId, store: Store
) -> ConfigEnvelope:
    """Challenge config (created with defaults on first read) plus stats."""
    config = await config_service.ensure_config(store, community_id)
    day = await clock_service.today(store, community_id)
    stats = await stats_service.get_stats(store, community_id, day)
    return ConfigEnvelope(
        config=ChallengeConfigResponse.model_validate(config),
        config_needs_setup=config_service.is_config_setup_required(config),
        stats=StatsResponse.model_validate(stats),
    )


@router.post(
    "/config",
    response_model=ChallengeConfigResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid config"},
        403: {"description": "Moderator access required"},
        409: {
            "model": ErrorResponse,
            "description": "Template change needs confirmation",
        },
    },
)
@limiter.limit(ADMIN_LIMIT)
async def update_config(
    request: Request,
    body: ConfigUpdateRequest,
    identity: ModeratorIdentity,
    store: Store,
) -> ChallengeConfigResponse | JSONResponse:
    try:
        config = await config_service.set_config(
            store,
            identity.community_id,
            body.template_id,
            title=body.title,
            description=body.description,
            badge_thresholds=body.badge_thresholds,
            confirm_template_change=body.confirm_template_change,
        )
    except ConfigValidationError as e:
        return _error(400, e.code, str(e), details=e.details)
    except TemplateChangeConfirmRequiredError as e:
        return _error(409, "TEMPLATE_CHANGE_CONFIRM_REQUIRED", str(e))

    return ChallengeConfigResponse.model_validate(config)


@router.post("/config/active-post", response_model=ChallengeConfigResponse)
@limiter.limit(ADMIN_LIMIT)
async def update_active_post(
    request: Request,
    body: ActivePostRequest,
    identity: ModeratorIdentity,
    store: Store,
) -> ChallengeConfigResponse:
    """Record which post currently hosts the challenge (None clears it)."""
    config = await config_service.set_active_post(
        store, identity.community_id, body.post_id
    )
    return ChallengeConfigResponse.model_validate(config)


@router.post(
    "/join",
    response_model=StateEnvelope,
    responses={429: {"model": ErrorResponse, "description": "Retry later"}},
)
@limiter.limit(ACTION_LIMIT)
async def join_challenge(
    request: Request,
    identity: CurrentIdentity,
    store: Store,
    body: JoinRequest | None = None,
) -> StateEnvelope | JSONResponse:
    privacy_value = body.privacy if body is not None else JoinRequest().privacy
    try:
        privacy = challenge_service.parse_privacy(privacy_value)
        await config_service.ensure_config(store, identity.community_id)
        state = await challenge_service.join(
            store, identity.community_id, identity.user_id, privacy
        )
    except InvalidPrivacyError as e:
        return _error(400, "INVALID_PRIVACY", str(e))
    except RateLimitedError as e:
        return _rate_limited(e)

    return StateEnvelope(state=UserStateResponse.model_validate(state))


@router.post(
    "/privacy",
    response_model=StateEnvelope,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid privacy value"},
        403: {"model": ErrorResponse, "description": "Join required"},
    },
)
@limiter.limit(ACTION_LIMIT)
async def update_privacy(
    request: Request,
    body: PrivacyRequest,
    identity: CurrentIdentity,
    store: Store,
) -> StateEnvelope | JSONResponse:
    try:
        state = await challenge_service.set_privacy(
            store, identity.community_id, identity.user_id, body.privacy
        )
    except InvalidPrivacyError as e:
        return _error(400, "INVALID_PRIVACY", str(e))
    except NotJoinedError as e:
        return _not_joined(e)

    return StateEnvelope(state=UserStateResponse.model_validate(state))


@router.post(
    "/checkin",
    response_model=CheckInResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Join required"},
        409: {"model": CheckInConflictResponse, "description": "Already checked in"},
        429: {"model": ErrorResponse, "description": "Retry later"},
    },
)
@limiter.limit(ACTION_LIMIT)
async def check_in(
    request: Request, identity: CurrentIdentity, store: Store
) -> CheckInResponse | JSONResponse:
    try:
        outcome = await challenge_service.record_check_in(
            store, identity.community_id, identity.user_id
        )
    except RateLimitedError as e:
        return _rate_limited(e)
    except NotJoinedError as e:
        return _not_joined(e)
    except AlreadyCheckedInError as e:
        body = CheckInConflictResponse(
            error=ErrorDetail(code=e.code, message=str(e)),
            state=UserStateResponse.model_validate(e.state),
        )
        return JSONResponse(
            status_code=409, content=body.model_dump(mode="json", exclude_none=True)
        )

    return CheckInResponse(
        state=UserStateResponse.model_validate(outcome.state),
        metadata=CheckInMetadataResponse.model_validate(outcome.metadata),
        stats=StatsResponse.model_validate(outcome.stats),
        day_number=outcome.day,
        next_reset_utc_ms=outcome.next_reset_ms,
    )


@router.get("/me", response_model=MeResponse)
@limiter.limit(ACTION_LIMIT)
async def get_me(
    request: Request, identity: CurrentIdentity, store: Store
) -> MeResponse:
    status = await challenge_service.get_status(
        store, identity.community_id, identity.user_id
    )
    return MeResponse(
        state=(
            UserStateResponse.model_validate(status.state)
            if status.state is not None
            else None
        ),
        joined=status.state is not None,
        checked_in_today=status.checked_in_today,
        can_check_in_today=status.can_check_in_today,
        day_number=status.day,
        next_reset_utc_ms=status.next_reset_ms,
        seconds_until_reset=status.seconds_until_reset,
        my_rank=status.rank,
        is_moderator=identity.is_moderator,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
@limiter.limit(ACTION_LIMIT)
async def get_leaderboard(
    request: Request,
    community_id: CommunityId,
    store: Store,
    resolver: Resolver,
    limit: str | None = None,
) -> LeaderboardResponse:
    """Public participants, best first. limit defaults to 25, max 100."""
    resolved_limit = parse_leaderboard_limit(limit)
    entries = await leaderboard_service.rank(store, community_id, resolved_limit)
    named = await with_display_names(resolver, entries)
    return LeaderboardResponse(
        leaderboard=[
            LeaderboardEntryResponse(
                rank=position,
                user_id=entry.user_id,
                display_name=entry.display_name,
                current_streak=entry.current_streak,
                best_streak=entry.best_streak,
                streak_start_day_utc=entry.streak_start_day_utc,
                last_checkin_day_utc=entry.last_checkin_day_utc,
            )
            for position, entry in enumerate(named, start=1)
        ],
        limit=resolved_limit,
    )


@router.get("/stats", response_model=StatsResponse)
@limiter.limit(ACTION_LIMIT)
async def get_stats(
    request: Request, community_id: CommunityId, store: Store
) -> StatsResponse:
    day = await clock_service.today(store, community_id)
    stats = await stats_service.get_stats(store, community_id, day)
    return StatsResponse.model_validate(stats)
