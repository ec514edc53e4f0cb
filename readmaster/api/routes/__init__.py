"""Routes module exports."""

from readmaster.api.routes.health import router as health_router

__all__ = [
    "health_router",
]
