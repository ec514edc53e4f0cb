"""Cache TTL tiers and key prefix constants."""


class CacheTTL:
    """TTL tiers in seconds, picked per query by how volatile the data is."""

    VERY_SHORT = 60  # 1 minute - due dates, live counters
    SHORT = 300  # 5 minutes - counts, lists
    MEDIUM = 900  # 15 minutes - user records
    LONG = 3600  # 1 hour
    VERY_LONG = 21600  # 6 hours
    DAY = 86400
    WEEK = 604800
    MONTH = 2592000


class CacheKeyPrefix:
    """Top-level key namespaces, one per logical area."""

    USER = "user"  # user:{id}[:...]
    BOOK = "book"  # book:{id}[:...]
    PROGRESS = "progress"  # progress:{user_id}:{book_id}
    GUIDE = "guide"  # guide:{book_id} - pre-reading guides
    FLASHCARD = "flashcard"
    ASSESSMENT = "assessment"
    SEARCH = "search"  # search:{normalized_query}[:filters]
    API = "api"
    LEADERBOARD = "leaderboard"  # leaderboard:{type}:{timeframe}:{page}
    FORUM = "forum"
    SESSION = "session"


KEY_SEPARATOR = ":"
