"""API route modules."""

from .challenge_routes import router as challenge_router
from .dev_routes import router as dev_router
from .health_routes import router as health_router

__all__ = [
    "health_router",
    "challenge_router",
    "dev_router",
]
