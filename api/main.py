"""FastAPI application for the Streak Challenge API."""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

import fastapi
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core.config import get_settings
from core.logger import clear_contextvars, configure_logging, get_logger
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.store import StoreError, create_store, dispose_store, init_store
from routes import challenge_router, dev_router, health_router
from services.display_names_service import UserIdDisplayNameResolver

configure_logging()
logger = get_logger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        exc_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def store_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """A store write did not apply. Every write is safe to retry."""
    logger.error(
        "store.request.failed",
        operation=getattr(exc, "operation", None),
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "PERSISTENCE_FAILURE",
                "message": "Could not save your change. Please try again.",
            }
        },
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Malformed request bodies and query parameters are client errors (400)."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(exc.errors()),
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "INVALID_REQUEST",
                "message": "Request validation failed",
            },
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Open the store at startup, close it on shutdown."""
    app.state.store = create_store()

    try:
        async with asyncio.timeout(60):
            await init_store(app.state.store)
        logger.info("init.complete")
    except TimeoutError:
        logger.error(
            "init.timeout",
            hint="Startup hung; check STORAGE_URI connectivity",
        )
        raise RuntimeError("Application startup timed out")
    except StoreError as e:
        logger.error("init.failed", error=str(e))
        raise

    try:
        yield
    finally:
        await dispose_store(app.state.store)


_settings = get_settings()

app = fastapi.FastAPI(
    title="Streak Challenge API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if _settings.enable_docs or _settings.debug else None,
    redoc_url="/redoc" if _settings.enable_docs or _settings.debug else None,
    openapi_url=("/openapi.json" if _settings.enable_docs or _settings.debug else None),
)

app.state.limiter = limiter
app.state.display_name_resolver = UserIdDisplayNameResolver()
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StoreError, store_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)


@app.middleware("http")
async def reset_log_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Contextvars bound by auth dependencies must not leak across requests."""
    clear_contextvars()
    return await call_next(request)


app.include_router(health_router)
app.include_router(challenge_router)
app.include_router(dev_router)
