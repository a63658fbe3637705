"""UTC day arithmetic and the per-community virtual clock.

A "day number" is the count of whole 86,400,000 ms days since the epoch;
it is the only unit of date in the system.

Each community may carry a time offset in seconds (dev tools only) that is
added to wall-clock time before deriving the day. Stored day numbers are
never rewritten when the offset changes; it only shifts future reads.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from core.logger import get_logger
from core.store import KeyValueStore
from repositories.dev_settings_repository import DevSettingsRepository

logger = get_logger(__name__)

MILLISECONDS_PER_DAY = 86_400_000


@dataclass(frozen=True)
class ClockReading:
    """Effective "now" for a community, plus the raw wall-clock values."""

    instant_ms: int
    day_number: int
    seconds_until_reset: int
    offset_seconds: int
    wall_instant_ms: int
    wall_day_number: int

    @property
    def next_reset_ms(self) -> int:
        return next_reset_timestamp(self.day_number)


def wall_clock_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def day_number(instant_ms: int) -> int:
    return instant_ms // MILLISECONDS_PER_DAY


def next_reset_timestamp(day: int) -> int:
    """Epoch ms at which `day` ends (00:00 UTC of the following day)."""
    return (day + 1) * MILLISECONDS_PER_DAY


def seconds_until_reset(instant_ms: int) -> int:
    remaining_ms = next_reset_timestamp(day_number(instant_ms)) - instant_ms
    return max(remaining_ms // 1000, 0)


def reading_at(wall_ms: int, offset_seconds: int) -> ClockReading:
    """Pure: derive a ClockReading from wall time and an offset."""
    instant_ms = wall_ms + offset_seconds * 1000
    return ClockReading(
        instant_ms=instant_ms,
        day_number=day_number(instant_ms),
        seconds_until_reset=seconds_until_reset(instant_ms),
        offset_seconds=offset_seconds,
        wall_instant_ms=wall_ms,
        wall_day_number=day_number(wall_ms),
    )


async def now(store: KeyValueStore, community_id: str) -> ClockReading:
    offset_seconds = await DevSettingsRepository(store).get_offset_seconds(
        community_id
    )
    return reading_at(wall_clock_ms(), offset_seconds)


async def today(store: KeyValueStore, community_id: str) -> int:
    return (await now(store, community_id)).day_number


async def get_offset_seconds(store: KeyValueStore, community_id: str) -> int:
    return await DevSettingsRepository(store).get_offset_seconds(community_id)


async def set_offset_seconds(
    store: KeyValueStore, community_id: str, offset_seconds: int
) -> ClockReading:
    """Trusted callers only. Returns the reading under the new offset."""
    await DevSettingsRepository(store).set_offset_seconds(community_id, offset_seconds)
    logger.info(
        "clock.offset.updated",
        community_id=community_id,
        offset_seconds=offset_seconds,
    )
    return reading_at(wall_clock_ms(), offset_seconds)
