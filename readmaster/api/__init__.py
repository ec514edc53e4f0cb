"""API module exports."""

from readmaster.api.routes import health_router

__all__ = [
    "health_router",
]
