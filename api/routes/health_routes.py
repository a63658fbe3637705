"""Health check endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.ratelimit import limiter
from core.store import Store, check_store_connection
from schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness: the process is up."""
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"description": "Store unreachable"}},
)
@limiter.limit("30/minute")
async def ready(request: Request, store: Store) -> HealthResponse:
    """Readiness: returns 200 only when the store answers a ping."""
    if not await check_store_connection(store):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Store unavailable",
        )
    return HealthResponse(status="ready")
