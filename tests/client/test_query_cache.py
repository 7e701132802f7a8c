"""Tests for the keyed query cache."""
import asyncio

import pytest

from client.query_cache import QueryCache, key_matches


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingFetcher:
    """Fetcher returning successive values and counting calls."""

    def __init__(self, *results: object, gate: asyncio.Event | None = None) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate = gate

    async def __call__(self) -> object:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    """Cache on the fake clock that never really sleeps between retries."""
    return QueryCache(clock, sleep=_no_sleep)


KEY = ("summaries", "detail", "s-1")


def test__key_matches__prefix() -> None:
    """Keys match their own prefixes only."""
    assert key_matches(KEY, ("summaries",))
    assert key_matches(KEY, ("summaries", "detail"))
    assert key_matches(KEY, ())
    assert not key_matches(KEY, ("summaries", "list"))


async def test__fetch__fresh_hit_skips_fetcher(cache: QueryCache, clock: FakeClock) -> None:
    """A fresh entry is served without fetching again."""
    fetcher = CountingFetcher("v1", "v2")

    first = await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)
    clock.advance(59)
    second = await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)

    assert (first, second) == ("v1", "v1")
    assert fetcher.calls == 1


async def test__fetch__stale_entry_refetched(cache: QueryCache, clock: FakeClock) -> None:
    """Once the stale time passes the next read refetches."""
    fetcher = CountingFetcher("v1", "v2")

    await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)
    clock.advance(60)
    result = await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)

    assert result == "v2"
    assert fetcher.calls == 2


async def test__fetch__concurrent_reads_share_one_request(cache: QueryCache) -> None:
    """Concurrent readers of one key trigger a single fetch."""
    gate = asyncio.Event()
    fetcher = CountingFetcher("v1", gate=gate)

    readers = [
        asyncio.ensure_future(cache.fetch(KEY, fetcher, stale_time=60, gc_time=300))
        for _ in range(3)
    ]
    await asyncio.sleep(0)
    assert cache.is_fetching(KEY)
    gate.set()
    results = await asyncio.gather(*readers)

    assert results == ["v1", "v1", "v1"]
    assert fetcher.calls == 1
    assert not cache.is_fetching(KEY)


async def test__invalidate__keeps_data_until_refetch(cache: QueryCache) -> None:
    """Invalidated data stays readable and the next read refetches."""
    fetcher = CountingFetcher("v1", "v2")
    await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)

    marked = cache.invalidate(("summaries",))

    assert marked == 1
    assert cache.get_data(KEY) == "v1"
    assert await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300) == "v2"


async def test__invalidate__only_matching_prefix(cache: QueryCache) -> None:
    """Entries outside the prefix stay fresh."""
    list_key = ("summaries", "list", ())
    detail = CountingFetcher("d1", "d2")
    listing = CountingFetcher("l1", "l2")
    await cache.fetch(KEY, detail, stale_time=60, gc_time=300)
    await cache.fetch(list_key, listing, stale_time=60, gc_time=300)

    cache.invalidate(("summaries", "list"))

    assert await cache.fetch(KEY, detail, stale_time=60, gc_time=300) == "d1"
    assert await cache.fetch(list_key, listing, stale_time=60, gc_time=300) == "l2"


async def test__invalidate__in_flight_result_not_written(cache: QueryCache) -> None:
    """A fetch that started before an invalidation does not overwrite the cache."""
    gate = asyncio.Event()
    slow = CountingFetcher("before-mutation", gate=gate)
    reader = asyncio.ensure_future(cache.fetch(KEY, slow, stale_time=60, gc_time=300))
    await asyncio.sleep(0)

    cache.invalidate(("summaries",))
    gate.set()
    stale_result = await reader

    assert stale_result == "before-mutation"
    assert KEY not in cache
    fresh = CountingFetcher("after-mutation")
    assert await cache.fetch(KEY, fresh, stale_time=60, gc_time=300) == "after-mutation"


async def test__set_data__supersedes_in_flight_fetch(cache: QueryCache) -> None:
    """Data written directly wins over a fetch already in flight."""
    gate = asyncio.Event()
    slow = CountingFetcher("server-old", gate=gate)
    reader = asyncio.ensure_future(cache.fetch(KEY, slow, stale_time=60, gc_time=300))
    await asyncio.sleep(0)

    cache.set_data(KEY, "written", stale_time=60, gc_time=300)
    gate.set()
    await reader

    assert cache.get_data(KEY) == "written"


async def test__remove__drops_entries(cache: QueryCache) -> None:
    """Removed entries are gone, not merely stale."""
    await cache.fetch(KEY, CountingFetcher("v1"), stale_time=60, gc_time=300)

    assert cache.remove(("summaries", "detail")) == 1
    assert cache.get_data(KEY) is None
    assert len(cache) == 0


async def test__remove__leaves_no_bookkeeping_for_idle_keys(cache: QueryCache) -> None:
    """Removing many settled keys does not leave per-key counters behind."""
    for index in range(50):
        await cache.fetch(
            ("summaries", "detail", f"s-{index}"), CountingFetcher(index),
            stale_time=60, gc_time=300,
        )
    await asyncio.sleep(0)

    cache.remove(("summaries",))

    assert len(cache) == 0
    assert cache._generations == {}
    assert cache._running == {}


async def test__remove__during_fetch_discards_result_then_forgets_key(
    cache: QueryCache,
) -> None:
    """A fetch racing a removal is not cached, and its counter goes when it ends."""
    gate = asyncio.Event()
    slow = CountingFetcher("before-removal", gate=gate)
    reader = asyncio.ensure_future(cache.fetch(KEY, slow, stale_time=60, gc_time=300))
    await asyncio.sleep(0)

    cache.remove(("summaries",))
    gate.set()
    assert await reader == "before-removal"
    await asyncio.sleep(0)

    assert KEY not in cache
    assert cache._generations == {}
    assert cache._running == {}


async def test__collect_garbage__drops_unused_entries(
    cache: QueryCache, clock: FakeClock,
) -> None:
    """Entries unread for longer than their gc time are collected."""
    await cache.fetch(KEY, CountingFetcher("v1"), stale_time=60, gc_time=300)
    other = ("summaries", "detail", "s-2")
    await cache.fetch(other, CountingFetcher("v2"), stale_time=600, gc_time=900)

    clock.advance(301)

    assert cache.collect_garbage() == 1
    assert KEY not in cache
    assert other in cache


async def test__fetch__read_extends_gc_lifetime(cache: QueryCache, clock: FakeClock) -> None:
    """Reading a fresh entry keeps it from being collected."""
    await cache.fetch(KEY, CountingFetcher("v1"), stale_time=600, gc_time=300)
    clock.advance(200)
    await cache.fetch(KEY, CountingFetcher("unused"), stale_time=600, gc_time=300)
    clock.advance(200)

    assert cache.collect_garbage() == 0


async def test__fetch__retries_transient_failures() -> None:
    """Failures are retried with growing delays up to the retry count."""
    delays: list[float] = []

    async def record(seconds: float) -> None:
        delays.append(seconds)

    cache = QueryCache(FakeClock(), retry_delay=1.0, sleep=record)
    fetcher = CountingFetcher(ConnectionError("a"), ConnectionError("b"), "v1")

    result = await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300, retry=2)

    assert result == "v1"
    assert fetcher.calls == 3
    assert delays == [1.0, 2.0]


async def test__fetch__retry_predicate_stops_retries(cache: QueryCache) -> None:
    """Failures the predicate rejects are raised at once."""
    fetcher = CountingFetcher(ValueError("final"), "v1")

    with pytest.raises(ValueError, match="final"):
        await cache.fetch(
            KEY, fetcher, stale_time=60, gc_time=300,
            retry=3, should_retry=lambda e: not isinstance(e, ValueError),
        )

    assert fetcher.calls == 1
    assert KEY not in cache


async def test__fetch__failure_keeps_previous_data(cache: QueryCache, clock: FakeClock) -> None:
    """A failed refetch leaves the last good data readable."""
    fetcher = CountingFetcher("v1", ConnectionError("down"))
    await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)
    clock.advance(61)

    with pytest.raises(ConnectionError):
        await cache.fetch(KEY, fetcher, stale_time=60, gc_time=300)

    assert cache.get_data(KEY) == "v1"


async def test__prefetch__swallows_errors(cache: QueryCache) -> None:
    """Prefetch failures are logged, never raised."""
    await cache.prefetch(
        KEY, CountingFetcher(ConnectionError("down")), stale_time=60, gc_time=300,
    )

    assert KEY not in cache


async def test__clear__drops_everything(cache: QueryCache) -> None:
    """Clearing empties the cache."""
    await cache.fetch(KEY, CountingFetcher("v1"), stale_time=60, gc_time=300)
    await cache.fetch(("users",), CountingFetcher("u"), stale_time=60, gc_time=300)

    cache.clear()

    assert len(cache) == 0
