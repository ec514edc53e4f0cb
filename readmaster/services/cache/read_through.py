"""Read-through caching and the higher-order wrappers built on it."""

import functools
from collections.abc import Awaitable, Callable, Sequence
from typing import ParamSpec, TypeVar, overload

from readmaster.core.logging import get_logger
from readmaster.core.tasks import create_background_task
from readmaster.services.cache.base import BaseCacheOperations

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

KeysSpec = Sequence[str] | Callable[..., Sequence[str]]


class ReadThroughMixin(BaseCacheOperations):
    """get_or_set plus the with_cache / with_invalidation wrappers."""

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[R]],
        ttl: int | None = None,
    ) -> R:
        """Return the cached value for ``key`` or compute, store and return it.

        The fetcher only runs on a miss (which includes the cache being
        unavailable). Its exceptions propagate unchanged and nothing is
        written. A ``None`` result is not stored since it would read back
        as a miss anyway.

        Concurrent misses on the same key each run the fetcher; the last
        write wins.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        value = await fetcher()

        if value is not None:
            # set() never raises; a failed write only costs a future miss
            await self.set(key, value, ttl=ttl)

        return value

    @overload
    def with_cache(
        self,
        key_fn: Callable[..., str],
        fn: Callable[P, Awaitable[R]],
        *,
        ttl: int | None = None,
    ) -> Callable[P, Awaitable[R]]: ...

    @overload
    def with_cache(
        self,
        key_fn: Callable[..., str],
        fn: None = None,
        *,
        ttl: int | None = None,
    ) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]: ...

    def with_cache(
        self,
        key_fn: Callable[..., str],
        fn: Callable[P, Awaitable[R]] | None = None,
        *,
        ttl: int | None = None,
    ) -> (
        Callable[P, Awaitable[R]]
        | Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]
    ):
        """Wrap an async function so each call goes through ``get_or_set``.

        Usable directly, ``cached = cache.with_cache(key_fn, fetch, ttl=60)``,
        or as a decorator, ``@cache.with_cache(key_fn, ttl=60)``.
        """

        def decorate(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
            @functools.wraps(func)
            async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                key = key_fn(*args, **kwargs)
                return await self.get_or_set(key, lambda: func(*args, **kwargs), ttl=ttl)

            return wrapper

        if fn is None:
            return decorate
        return decorate(fn)

    @overload
    def with_invalidation(
        self, keys: KeysSpec, fn: Callable[P, Awaitable[R]]
    ) -> Callable[P, Awaitable[R]]: ...

    @overload
    def with_invalidation(
        self, keys: KeysSpec, fn: None = None
    ) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]: ...

    def with_invalidation(
        self,
        keys: KeysSpec,
        fn: Callable[P, Awaitable[R]] | None = None,
    ) -> (
        Callable[P, Awaitable[R]]
        | Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]
    ):
        """Wrap an async mutation so its cache keys are dropped afterwards.

        ``keys`` is either a fixed list or a callable receiving the same
        arguments as the wrapped function. Deletion is launched as a tracked
        background task once the call returns; the caller gets the result
        without waiting for it. Nothing is invalidated when the call raises.
        """

        def decorate(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
            @functools.wraps(func)
            async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                result = await func(*args, **kwargs)

                to_delete = list(keys(*args, **kwargs) if callable(keys) else keys)
                if to_delete:
                    create_background_task(
                        self.delete_many(to_delete),
                        name=f"invalidate:{func.__name__}",
                    )

                return result

            return wrapper

        if fn is None:
            return decorate
        return decorate(fn)
