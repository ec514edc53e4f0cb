"""Cache key builders.

Keys are ``<prefix>:<part>:<part>...``. A part that itself contains the
separator (or the escape character) is percent-escaped so that two
different part lists can never join into the same key.
"""

import re

from readmaster.services.cache.constants import KEY_SEPARATOR, CacheKeyPrefix

_WHITESPACE = re.compile(r"\s+")
_GLOB_SPECIAL = re.compile(r"([\\*?\[\]^])")


def _escape_part(part: str | int) -> str:
    text = str(part)
    if "%" in text or KEY_SEPARATOR in text:
        text = text.replace("%", "%25").replace(KEY_SEPARATOR, "%3A")
    return text


def build_key(prefix: str, *parts: str | int) -> str:
    """Join a namespace prefix and ordered parts into a cache key.

    >>> build_key(CacheKeyPrefix.USER, "123", "books")
    'user:123:books'
    """
    return KEY_SEPARATOR.join([prefix, *(_escape_part(p) for p in parts)])


def escape_pattern(part: str | int) -> str:
    """Escape a key part for literal use inside a SCAN MATCH glob."""
    return _GLOB_SPECIAL.sub(r"\\\1", _escape_part(part))


def user_key(user_id: str, *parts: str | int) -> str:
    return build_key(CacheKeyPrefix.USER, user_id, *parts)


def book_key(book_id: str, *parts: str | int) -> str:
    return build_key(CacheKeyPrefix.BOOK, book_id, *parts)


def progress_key(user_id: str, book_id: str) -> str:
    return build_key(CacheKeyPrefix.PROGRESS, user_id, book_id)


def guide_key(book_id: str) -> str:
    return build_key(CacheKeyPrefix.GUIDE, book_id)


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse whitespace runs to a single underscore."""
    return _WHITESPACE.sub("_", query.strip().lower())


def search_key(query: str, *filters: str | int, **named_filters: str | int) -> str:
    """Key for search results.

    Queries differing only in case or spacing share a key. Positional
    filters keep the caller's order; named filters follow, sorted by name.
    """
    named = [f"{name}={value}" for name, value in sorted(named_filters.items())]
    return build_key(CacheKeyPrefix.SEARCH, normalize_query(query), *filters, *named)


def leaderboard_key(board_type: str, timeframe: str, page: int = 0) -> str:
    """Key for a leaderboard page; unpaged requests map to page 0."""
    return build_key(CacheKeyPrefix.LEADERBOARD, board_type, timeframe, page)
