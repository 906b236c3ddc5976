"""
Query Cache
===========

Keyed cache for read results with explicit invalidation and subscriptions.

Keys are tuples, e.g. ("releaseEpics", project, area_path). Invalidation
takes a key prefix, so ("releaseEpics",) drops the epic list of every scope.
Nothing expires on a timer; entries live until they are invalidated.

Every key carries a version that `invalidate` bumps. A load that was started
before an invalidation still returns its value to the caller but is not
stored, so a read racing a mutation cannot put pre-mutation data back.
"""

from typing import Any, Awaitable, Callable, Dict, List, Tuple

from release_board.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[Any, ...]
Subscriber = Callable[[CacheKey], None]


def _matches(key: CacheKey, prefix: CacheKey) -> bool:
    return key[:len(prefix)] == prefix


class QueryCache:
    """In-memory query cache with `get`, `set`, `invalidate` and `subscribe`."""

    def __init__(self):
        self._entries: Dict[CacheKey, Any] = {}
        self._versions: Dict[CacheKey, int] = {}
        self._subscribers: List[Tuple[CacheKey, Subscriber]] = []

    def peek(self, key: CacheKey, default: Any = None) -> Any:
        """Return the cached value without loading."""
        return self._entries.get(key, default)

    async def get(self, key: CacheKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for `key`, loading it on a miss.

        The loaded value is stored only if `key` was not invalidated while
        the loader ran. Loader failures propagate and store nothing.
        """
        if key in self._entries:
            return self._entries[key]
        version = self._versions.setdefault(key, 0)
        value = await loader()
        if self._versions.get(key) == version:
            self._entries[key] = value
        else:
            logger.debug("Discarding load superseded by invalidation", extra={"key": repr(key)})
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, prefix: CacheKey) -> int:
        """
        Drop every entry whose key starts with `prefix` and notify subscribers.

        Loads still running for a matching key will not be stored.

        Returns:
            Number of entries removed
        """
        stale = [key for key in self._entries if _matches(key, prefix)]
        for key in stale:
            del self._entries[key]
        for key in self._versions:
            if _matches(key, prefix):
                self._versions[key] += 1

        for sub_prefix, callback in list(self._subscribers):
            if _matches(prefix, sub_prefix) or _matches(sub_prefix, prefix):
                try:
                    callback(prefix)
                except Exception as e:
                    logger.error(
                        "Query cache subscriber failed",
                        extra={"prefix": repr(prefix), "error": str(e)}
                    )

        return len(stale)

    def subscribe(self, prefix: CacheKey, callback: Subscriber) -> Callable[[], None]:
        """
        Register `callback` for invalidations overlapping `prefix`.

        Returns:
            Callable that removes the subscription
        """
        entry = (prefix, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe
