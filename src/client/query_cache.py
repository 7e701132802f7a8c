"""
Keyed, invalidation-driven cache of server data.

Entries are keyed by tuples such as `("summaries", "detail", "<id>")`, and
invalidation and removal address every key that starts with a given prefix.

Reads are stale-while-revalidate: an entry older than its stale time, or one
explicitly invalidated, is refetched on the next read, but its previous data
stays readable through `get_data` until the refetch lands.

Concurrent reads of one key share a single in-flight fetch. While any fetch
for a key is running, the key has a generation counter that invalidate, remove
and set_data bump; a fetch that started under an older generation still
resolves for the callers awaiting it but never writes its result into the
cache, so a read that starts after a mutation's cache write always observes
the post-mutation state. Counters are dropped once a key's last fetch ends.
"""
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Fetcher = Callable[[], Awaitable[Any]]
RetryPredicate = Callable[[Exception], bool]

# Upper bound on the delay between read retries, in seconds
MAX_RETRY_DELAY = 30.0


@dataclass
class CacheEntry:
    """Cached result of one query."""

    key: QueryKey
    data: Any
    fetched_at: float
    stale_at: float
    gc_time: float
    last_used: float
    invalidated: bool = False

    def is_stale(self, now: float) -> bool:
        """True when the next read must refetch."""
        return self.invalidated or now >= self.stale_at


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """True when `key` starts with `prefix`."""
    return key[:len(prefix)] == prefix


def _retry_always(_exc: Exception) -> bool:
    return True


class QueryCache:
    """In-memory query cache with request de-duplication and prefix invalidation."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        *,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, asyncio.Future] = {}
        self._generations: dict[QueryKey, int] = {}
        # Fetch tasks per key, including ones detached by a bump
        self._running: dict[QueryKey, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def entry(self, key: QueryKey) -> CacheEntry | None:
        """Get the raw entry for a key, if one is stored."""
        return self._entries.get(key)

    def get_data(self, key: QueryKey) -> Any:
        """Read cached data without fetching, even if stale. None when absent."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def is_fetching(self, key: QueryKey) -> bool:
        """True while a fetch for `key` is in flight."""
        return key in self._in_flight

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        stale_time: float,
        gc_time: float,
        retry: int = 0,
        should_retry: RetryPredicate = _retry_always,
    ) -> Any:
        """
        Return fresh cached data for `key`, fetching it when absent or stale.

        Args:
            key: Query key.
            fetcher: Coroutine function producing the data.
            stale_time: Seconds the fetched data counts as fresh.
            gc_time: Seconds an unused entry is kept before collection.
            retry: Extra attempts after a failed fetch.
            should_retry: Whether a given failure is worth another attempt.

        Raises:
            Exception: Whatever the last fetch attempt raised.
        """
        self.collect_garbage()
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and not entry.is_stale(now):
            entry.last_used = now
            logger.debug("query_cache_hit key=%s", key)
            return entry.data

        task = self._in_flight.get(key)
        if task is None:
            logger.debug("query_cache_miss key=%s", key)
            self._running[key] = self._running.get(key, 0) + 1
            task = asyncio.ensure_future(
                self._run(
                    key, fetcher, self._generations.get(key, 0),
                    stale_time, gc_time, retry, should_retry,
                ),
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._fetch_done(key, t))
        else:
            logger.debug("query_cache_join key=%s", key)
        # A cancelled caller must not cancel the fetch other callers share
        return await asyncio.shield(task)

    async def prefetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        stale_time: float,
        gc_time: float,
        retry: int = 0,
        should_retry: RetryPredicate = _retry_always,
    ) -> None:
        """Warm the cache for `key`. Failures are logged, never raised."""
        try:
            await self.fetch(
                key, fetcher,
                stale_time=stale_time, gc_time=gc_time,
                retry=retry, should_retry=should_retry,
            )
        except Exception as e:
            logger.warning("query_prefetch_failed key=%s error=%s", key, e)

    def set_data(
        self,
        key: QueryKey,
        data: Any,
        *,
        stale_time: float,
        gc_time: float,
    ) -> None:
        """Store data for `key` as freshly fetched, superseding any in-flight fetch."""
        self._bump(key)
        self._write(key, data, stale_time, gc_time)

    def invalidate(self, prefix: QueryKey) -> int:
        """
        Mark every entry under `prefix` stale so its next read refetches.

        Data is kept readable until the refetch completes.

        Returns:
            Number of entries marked.
        """
        marked = 0
        for key, entry in self._entries.items():
            if key_matches(key, prefix):
                entry.invalidated = True
                marked += 1
        self._bump_prefix(prefix)
        logger.debug("query_cache_invalidate prefix=%s entries=%s", prefix, marked)
        return marked

    def remove(self, prefix: QueryKey) -> int:
        """
        Drop every entry under `prefix`.

        Returns:
            Number of entries dropped.
        """
        keys = [key for key in self._entries if key_matches(key, prefix)]
        for key in keys:
            del self._entries[key]
        self._bump_prefix(prefix)
        logger.debug("query_cache_remove prefix=%s entries=%s", prefix, len(keys))
        return len(keys)

    def clear(self) -> None:
        """Drop every entry and detach every in-flight fetch."""
        self.remove(())

    def collect_garbage(self) -> int:
        """
        Drop entries that have not been read for longer than their gc time.

        Returns:
            Number of entries dropped.
        """
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.last_used >= entry.gc_time and key not in self._in_flight
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("query_cache_gc entries=%s", len(expired))
        return len(expired)

    async def _run(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        generation: int,
        stale_time: float,
        gc_time: float,
        retry: int,
        should_retry: RetryPredicate,
    ) -> Any:
        attempt = 0
        while True:
            try:
                data = await fetcher()
                break
            except Exception as e:
                if attempt >= retry or not should_retry(e):
                    raise
                delay = min(self._retry_delay * 2 ** attempt, MAX_RETRY_DELAY)
                attempt += 1
                logger.debug(
                    "query_retry key=%s attempt=%s delay=%s error=%s", key, attempt, delay, e,
                )
                await self._sleep(delay)

        if self._generations.get(key, 0) == generation:
            self._write(key, data, stale_time, gc_time)
        else:
            logger.debug("query_result_superseded key=%s", key)
        return data

    def _write(self, key: QueryKey, data: Any, stale_time: float, gc_time: float) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            fetched_at=now,
            stale_at=now + stale_time,
            gc_time=gc_time,
            last_used=now,
        )

    def _fetch_done(self, key: QueryKey, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        remaining = self._running[key] - 1
        if remaining:
            self._running[key] = remaining
        else:
            del self._running[key]
            self._generations.pop(key, None)
        # Retrieve the exception so a fetch nobody awaits anymore is not reported as lost
        if not task.cancelled():
            task.exception()

    def _bump(self, key: QueryKey) -> None:
        # Only a running fetch can observe the counter
        if key in self._running:
            self._generations[key] = self._generations.get(key, 0) + 1
        self._in_flight.pop(key, None)

    def _bump_prefix(self, prefix: QueryKey) -> None:
        for key in [key for key in self._running if key_matches(key, prefix)]:
            self._bump(key)
