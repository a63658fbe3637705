"""Route test configuration: disable the HTTP rate limiter."""

from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi limits so many requests per test never hit 429."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield
