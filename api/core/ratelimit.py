"""Rate limiting: per-action throttle and the slowapi HTTP limiter.

Two layers:
- evaluate_action_throttle() is a pure decision over a stored last-attempt
  timestamp. Join and check-in use it so double-taps are rejected with a
  precise retry-after even across workers (timestamps live in the store).
- limiter is a coarse per-identity slowapi limit on every route.

SCALABILITY NOTES:
- Production should use Redis: set RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage does NOT work with multiple workers/replicas
"""

import math
from dataclasses import dataclass

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()

ACTION_THROTTLE_WINDOW_MS = 2_000


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    retry_after_ms: int

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.retry_after_ms / 1000)


def evaluate_action_throttle(
    now_ms: int,
    last_attempt_ms: int | None,
    window_ms: int = ACTION_THROTTLE_WINDOW_MS,
) -> ThrottleDecision:
    """Decide whether enough time has passed since the last recorded attempt.

    A last attempt in the future (clock or dev offset moved backwards) is
    allowed; the caller overwrites it with now_ms.
    """
    if last_attempt_ms is None:
        return ThrottleDecision(allowed=True, retry_after_ms=0)

    if last_attempt_ms > now_ms:
        return ThrottleDecision(allowed=True, retry_after_ms=0)

    elapsed_ms = now_ms - last_attempt_ms
    if elapsed_ms >= window_ms:
        return ThrottleDecision(allowed=True, retry_after_ms=0)

    return ThrottleDecision(
        allowed=False, retry_after_ms=max(window_ms - elapsed_ms, 0)
    )


if not settings.debug and settings.ratelimit_storage_uri == "memory://":
    logger.warning(
        "ratelimit.storage.memory",
        hint="Set RATELIMIT_STORAGE_URI to a Redis URL for multi-worker deployments",
    )


def _get_request_identifier(request: Request) -> str:
    """
    Get a unique identifier for rate limiting.

    Uses the caller's community and user headers when present, otherwise
    falls back to IP address.
    """
    user_id = request.headers.get("x-user-id")
    if user_id:
        community_id = request.headers.get("x-community-id", "")
        return f"user:{community_id}:{user_id}"

    return get_remote_address(request)


_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=_get_request_identifier,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    in_memory_fallback_enabled=_using_redis,
    key_prefix="streaks:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "ratelimit.http.exceeded",
        identifier=_get_request_identifier(request),
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": "Rate limit exceeded. Please slow down.",
                "details": {"limit": exc.detail},
            }
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


ACTION_LIMIT = "30/minute"

ADMIN_LIMIT = "10/minute"
