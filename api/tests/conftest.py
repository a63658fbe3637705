"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory key-value store per test (no Redis needed)
- Clock helpers for moving a community's effective day
- FastAPI test client wired to the per-test store
- Identity header helpers for member and moderator requests
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORAGE_URI", "memory://")
os.environ.setdefault("MODERATOR_USERNAMES", "mod_alice,u/Mod_Bob")
os.environ.setdefault("DEV_TOOLS_ENABLED", "true")
# Throttling has dedicated tests; elsewhere back-to-back actions must pass
os.environ.setdefault("ACTION_THROTTLE_MS", "0")

from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from core.cache import clear_all_caches
from core.config import clear_settings_cache
from core.store import MemoryStore
from repositories import DevSettingsRepository
from services.clock_service import MILLISECONDS_PER_DAY, wall_clock_ms

COMMUNITY_ID = "t5_community"


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Settings and caches are process-wide; start every test fresh."""
    clear_settings_cache()
    clear_all_caches()
    yield
    clear_settings_cache()
    clear_all_caches()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def community_id() -> str:
    return COMMUNITY_ID


@pytest.fixture
def move_to_day(store: MemoryStore, community_id: str):
    """Set the dev offset so the community's effective day is `day`.

    Lands at midday of the target day so a test run that straddles midnight
    cannot change the effective day.
    """

    async def _move(day: int) -> None:
        target_ms = day * MILLISECONDS_PER_DAY + MILLISECONDS_PER_DAY // 2
        offset_seconds = (target_ms - wall_clock_ms()) // 1000
        await DevSettingsRepository(store).set_offset_seconds(
            community_id, offset_seconds
        )

    return _move


def identity_headers(
    user_id: str, username: str | None = None, community_id: str = COMMUNITY_ID
) -> dict[str, str]:
    headers = {"X-Community-Id": community_id, "X-User-Id": user_id}
    if username is not None:
        headers["X-Username"] = username
    return headers


@pytest.fixture
def headers_for():
    """Build identity headers for an arbitrary user."""
    return identity_headers


@pytest.fixture
def member_headers() -> dict[str, str]:
    return identity_headers("t2_member", "member_mia")


@pytest.fixture
def moderator_headers() -> dict[str, str]:
    return identity_headers("t2_moderator", "mod_alice")


@pytest_asyncio.fixture
async def app(store: MemoryStore) -> AsyncGenerator[FastAPI]:
    """FastAPI app with the per-test store in place of the lifespan one."""
    from main import app as fastapi_app
    from services.display_names_service import UserIdDisplayNameResolver

    fastapi_app.state.store = store
    fastapi_app.state.display_name_resolver = UserIdDisplayNameResolver()
    yield fastapi_app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for testing routes."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
