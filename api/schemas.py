"""Pydantic schemas for API request/response validation."""

from pydantic import BaseModel, ConfigDict, Field

from models import Privacy


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "streak-challenge-api"


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, str] | None = None


class ErrorResponse(BaseModel):
    """Error envelope for domain errors (validation, conflict, throttling)."""

    error: ErrorDetail


class UserStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    joined_at: str
    privacy: Privacy
    current_streak: int
    best_streak: int
    streak_start_day_utc: int | None
    last_checkin_day_utc: int | None
    freeze_tokens: int
    freeze_saves: int
    badges: list[str]
    is_participant: bool


class CheckInMetadataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    used_freeze: bool
    earned_freeze: bool
    token_count: int
    earned_badge: str | None


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    last_stats_day: int
    participants_total: int
    checkins_today: int
    checkins_all_time: int
    longest_streak_all_time: int


class ChallengeConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    template_id: str
    title: str
    description: str
    badge_thresholds: list[int]
    active_post_id: str | None
    timezone: str
    created_at: str
    updated_at: str


class ConfigEnvelope(BaseModel):
    config: ChallengeConfigResponse
    config_needs_setup: bool
    stats: StatsResponse


class ConfigUpdateRequest(BaseModel):
    """Config update. Omitted fields take the template's defaults."""

    template_id: str = Field(max_length=50)
    title: str | None = Field(default=None, max_length=1000)
    description: str | None = Field(default=None, max_length=5000)
    badge_thresholds: list[int] | None = Field(default=None, max_length=100)
    confirm_template_change: bool = False


class ActivePostRequest(BaseModel):
    post_id: str | None = Field(default=None, max_length=100)


class TemplateResponse(BaseModel):
    id: str
    label: str
    title: str
    description: str
    badge_thresholds: list[int]


class TemplatesResponse(BaseModel):
    templates: list[TemplateResponse]


class PrivacyRequest(BaseModel):
    # Checked by the service so an unknown value is a 400 with a clear message
    privacy: str = Field(max_length=20)


class JoinRequest(BaseModel):
    privacy: str = Field(default=Privacy.PUBLIC.value, max_length=20)


class StateEnvelope(BaseModel):
    state: UserStateResponse


class CheckInResponse(BaseModel):
    state: UserStateResponse
    metadata: CheckInMetadataResponse
    stats: StatsResponse
    day_number: int
    next_reset_utc_ms: int


class CheckInConflictResponse(BaseModel):
    """409 body: the unchanged state lets the client reconcile."""

    error: ErrorDetail
    state: UserStateResponse


class MeResponse(BaseModel):
    state: UserStateResponse | None
    joined: bool
    checked_in_today: bool
    can_check_in_today: bool
    day_number: int
    next_reset_utc_ms: int
    seconds_until_reset: int
    my_rank: int | None
    is_moderator: bool


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    display_name: str | None
    current_streak: int
    best_streak: int
    streak_start_day_utc: int | None
    last_checkin_day_utc: int | None


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardEntryResponse]
    limit: int


class ClockResponse(BaseModel):
    """Dev view of the community clock."""

    server_utc_now_ms: int
    utc_day_number_now: int
    dev_time_offset_seconds: int
    effective_day_number: int
    seconds_until_reset: int
    next_reset_utc_ms: int


class DevTimeRequest(BaseModel):
    # +-10 years
    dev_time_offset_seconds: int = Field(ge=-315_360_000, le=315_360_000)


class ResetResponse(BaseModel):
    state_generation: int
    clock: ClockResponse


class StatsRepairResponse(BaseModel):
    day_number: int
    before: int
    after: int
