"""Challenge config service.

The config is created lazily from the custom template the first time a
community is read. Stored records may predate fields added later, so every
field falls back to the stored template's default when missing or invalid.
"""

from dataclasses import replace

from core.logger import get_logger
from core.store import KeyValueStore
from models import ChallengeConfig, utcnow_iso
from repositories.config_repository import ConfigRepository
from repositories.utils import parse_json_list
from services import clock_service, stats_service
from services.templates_service import (
    DEFAULT_TEMPLATE_ID,
    TEMPLATE_IDS,
    apply_template_to_config,
    get_template,
    is_template_id,
)

logger = get_logger(__name__)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 500
MAX_BADGE_THRESHOLDS = 10
MAX_BADGE_THRESHOLD_VALUE = 365


class ConfigValidationError(Exception):
    """Raised when config input is rejected before any write.

    details maps field name to a human-readable message.
    """

    def __init__(self, details: dict[str, str], code: str = "INVALID_CONFIG_FIELDS"):
        self.details = details
        self.code = code
        super().__init__("Config validation failed")


class TemplateChangeConfirmRequiredError(Exception):
    """Raised when switching template with participants and no confirmation."""

    def __init__(self, current_template_id: str, requested_template_id: str):
        self.current_template_id = current_template_id
        self.requested_template_id = requested_template_id
        super().__init__(
            "Changing template will update the challenge theme for all users. "
            "Existing streaks remain intact."
        )


def _is_valid_threshold_list(values: object) -> bool:
    if not isinstance(values, list) or not values:
        return False
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return False
    return (
        _is_sorted_unique_positive(values)
        and len(values) <= MAX_BADGE_THRESHOLDS
        and values[-1] <= MAX_BADGE_THRESHOLD_VALUE
    )


def _is_sorted_unique_positive(values: list[int]) -> bool:
    if any(v <= 0 for v in values):
        return False
    return all(a < b for a, b in zip(values, values[1:]))


def parse_config_record(data: dict[str, str]) -> ChallengeConfig:
    """Build a config from a stored hash, using template defaults for gaps."""
    template_id = data.get("templateId", "")
    if not is_template_id(template_id):
        template_id = DEFAULT_TEMPLATE_ID
    template = get_template(template_id)

    thresholds = parse_json_list(data.get("badgeThresholds"))
    if not _is_valid_threshold_list(thresholds):
        thresholds = template["badge_thresholds"]

    created_at = data.get("createdAt") or utcnow_iso()
    return ChallengeConfig(
        template_id=template_id,
        title=data.get("title") or template["title"],
        description=data.get("description", template["description"]),
        badge_thresholds=tuple(thresholds),
        created_at=created_at,
        updated_at=data.get("updatedAt") or created_at,
        active_post_id=data.get("activePostId") or None,
    )


def validate_config_fields(
    title: str, description: str, badge_thresholds: list[int]
) -> dict[str, str]:
    """Field errors for already-trimmed input; empty when valid."""
    details: dict[str, str] = {}

    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        details["title"] = (
            f"title must be {TITLE_MIN_LENGTH}..{TITLE_MAX_LENGTH} characters"
        )
    if len(description) > DESCRIPTION_MAX_LENGTH:
        details["description"] = (
            f"description must be 0..{DESCRIPTION_MAX_LENGTH} characters"
        )

    if not badge_thresholds:
        details["badgeThresholds"] = "badgeThresholds cannot be empty"
    elif len(badge_thresholds) > MAX_BADGE_THRESHOLDS:
        details["badgeThresholds"] = (
            f"badgeThresholds must contain at most {MAX_BADGE_THRESHOLDS} values"
        )
    elif max(badge_thresholds) > MAX_BADGE_THRESHOLD_VALUE:
        details["badgeThresholds"] = (
            f"badgeThresholds values must be <= {MAX_BADGE_THRESHOLD_VALUE}"
        )
    elif not _is_sorted_unique_positive(badge_thresholds):
        details["badgeThresholds"] = (
            "badgeThresholds must be positive integers in sorted unique order"
        )

    return details


def default_config() -> ChallengeConfig:
    defaults = apply_template_to_config(DEFAULT_TEMPLATE_ID)
    timestamp = utcnow_iso()
    return ChallengeConfig(
        template_id=defaults["template_id"],
        title=defaults["title"],
        description=defaults["description"],
        badge_thresholds=tuple(defaults["badge_thresholds"]),
        created_at=timestamp,
        updated_at=timestamp,
    )


async def ensure_config(store: KeyValueStore, community_id: str) -> ChallengeConfig:
    """Get the community's config, creating template defaults on first access."""
    repo = ConfigRepository(store)
    data = await repo.get_raw(community_id)
    if data:
        return parse_config_record(data)

    config = default_config()
    await repo.save(community_id, config)
    logger.info(
        "config.created", community_id=community_id, template_id=config.template_id
    )
    return config


async def get_config(store: KeyValueStore, community_id: str) -> ChallengeConfig:
    return await ensure_config(store, community_id)


async def set_config(
    store: KeyValueStore,
    community_id: str,
    template_id: str,
    title: str | None = None,
    description: str | None = None,
    badge_thresholds: list[int] | None = None,
    confirm_template_change: bool = False,
) -> ChallengeConfig:
    """Validate and persist a config update.

    Omitted fields take the (new) template's defaults.

    Raises:
        ConfigValidationError: unknown template or invalid field values.
        TemplateChangeConfirmRequiredError: template switch with participants
            present and confirm_template_change not set.
    """
    if not is_template_id(template_id):
        raise ConfigValidationError(
            {"templateId": f"templateId must be one of: {', '.join(TEMPLATE_IDS)}"},
            code="INVALID_TEMPLATE_ID",
        )

    existing = await ensure_config(store, community_id)
    if template_id != existing.template_id and not confirm_template_change:
        day = await clock_service.today(store, community_id)
        stats = await stats_service.get_stats(store, community_id, day)
        if stats.participants_total > 0:
            raise TemplateChangeConfirmRequiredError(existing.template_id, template_id)

    merged = apply_template_to_config(
        template_id,
        title=title.strip() if title is not None else None,
        description=description.strip() if description is not None else None,
        badge_thresholds=badge_thresholds,
    )
    details = validate_config_fields(
        merged["title"], merged["description"], merged["badge_thresholds"]
    )
    if details:
        raise ConfigValidationError(details)

    config = replace(
        existing,
        template_id=merged["template_id"],
        title=merged["title"],
        description=merged["description"],
        badge_thresholds=tuple(merged["badge_thresholds"]),
        updated_at=utcnow_iso(),
    )
    await ConfigRepository(store).save(community_id, config)
    logger.info(
        "config.updated",
        community_id=community_id,
        template_id=config.template_id,
        template_changed=template_id != existing.template_id,
    )
    return config


def is_config_setup_required(config: ChallengeConfig) -> bool:
    """True while the config still carries the untouched custom defaults."""
    if config.template_id != DEFAULT_TEMPLATE_ID:
        return False
    template = get_template(DEFAULT_TEMPLATE_ID)
    return (
        config.title == template["title"]
        and config.description == template["description"]
        and list(config.badge_thresholds) == template["badge_thresholds"]
    )


async def set_active_post(
    store: KeyValueStore, community_id: str, post_id: str | None
) -> ChallengeConfig:
    existing = await ensure_config(store, community_id)
    config = replace(existing, active_post_id=post_id or None, updated_at=utcnow_iso())
    await ConfigRepository(store).save(community_id, config)
    logger.info(
        "config.active_post.updated", community_id=community_id, post_id=post_id
    )
    return config
