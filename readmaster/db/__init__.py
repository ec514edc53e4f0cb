"""Database module exports."""

from readmaster.db.models import (
    Base,
    Book,
    Flashcard,
    Follow,
    ForumCategory,
    ForumPost,
    ReadingProgress,
    User,
    UserAchievement,
    UserStats,
)
from readmaster.db.session import (
    check_db_health,
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "User",
    "UserStats",
    "Book",
    "ReadingProgress",
    "Flashcard",
    "Follow",
    "UserAchievement",
    "ForumCategory",
    "ForumPost",
    # Session management
    "get_engine",
    "get_session_factory",
    "init_db",
    "close_db",
    "check_db_health",
]
