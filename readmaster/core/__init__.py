"""Core module exports."""

from readmaster.core.config import Settings, get_settings
from readmaster.core.exceptions import (
    AppException,
    CacheError,
    CacheSerializationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from readmaster.core.logging import get_logger, setup_logging
from readmaster.core.tasks import create_background_task, drain_background_tasks

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Background tasks
    "create_background_task",
    "drain_background_tasks",
    # Exceptions
    "AppException",
    "CacheError",
    "CacheSerializationError",
    "ConflictError",
    "NotFoundError",
    "ValidationError",
]
