"""
Cached summary queries and the mutations that keep them consistent.

List queries are keyed by their normalized filters, detail queries by id.
Every successful mutation marks all list entries stale, since any list's
membership or total may have changed:

- create seeds the detail entry with the created summary;
- update overwrites the detail entry, then marks it stale so the next read
  revalidates it against the server;
- delete drops the detail entry entirely.

Failed mutations leave the cache untouched.
"""
import logging
from collections.abc import Callable

import httpx

from client import summary_api
from client.api_client import ApiError, MalformedResponseError
from client.query_cache import QueryCache, QueryKey
from core.config import Settings, get_settings
from schemas.summary import (
    Pagination,
    SummaryCreate,
    SummaryFilters,
    SummaryListResponse,
    SummaryUpdate,
    SummaryWithUser,
)

logger = logging.getLogger(__name__)

# Client errors that another attempt cannot fix
_FINAL_CATEGORIES = frozenset({"auth", "forbidden", "not_found", "validation"})


class SummaryKeys:
    """Query keys for summaries."""

    ALL: QueryKey = ("summaries",)
    LISTS: QueryKey = ("summaries", "list")
    DETAILS: QueryKey = ("summaries", "detail")

    @classmethod
    def list_key(cls, filters: SummaryFilters) -> QueryKey:
        """Key of one filtered list query."""
        return (*cls.LISTS, filters.cache_key())

    @classmethod
    def detail_key(cls, summary_id: str) -> QueryKey:
        """Key of one summary's detail query."""
        return (*cls.DETAILS, summary_id)


def should_retry(exc: Exception) -> bool:
    """Retry transient failures only."""
    if isinstance(exc, ApiError):
        return exc.category not in _FINAL_CATEGORIES
    return not isinstance(exc, MalformedResponseError)


class SummaryCache:
    """Summary reads and writes through a shared query cache."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: QueryCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.client = client
        self.cache = cache or QueryCache()
        self.list_stale = settings.list_stale_seconds
        self.list_gc = settings.list_gc_seconds
        self.detail_stale = settings.detail_stale_seconds
        self.detail_gc = settings.detail_gc_seconds
        self.retries = settings.query_retries

    # --- Queries ---

    async def fetch_list(self, filters: SummaryFilters | None = None) -> SummaryListResponse:
        """Get a page of summaries, from cache when fresh."""
        filters = filters or SummaryFilters()
        return await self.cache.fetch(
            SummaryKeys.list_key(filters),
            lambda: summary_api.list_summaries(self.client, filters),
            stale_time=self.list_stale,
            gc_time=self.list_gc,
            retry=self.retries,
            should_retry=should_retry,
        )

    async def fetch_detail(self, summary_id: str | None) -> SummaryWithUser | None:
        """
        Get one summary, from cache when fresh.

        Returns None without fetching when `summary_id` is empty, and None when
        the summary does not exist.
        """
        if not summary_id:
            return None
        return await self.cache.fetch(
            SummaryKeys.detail_key(summary_id),
            lambda: summary_api.get_summary(self.client, summary_id),
            stale_time=self.detail_stale,
            gc_time=self.detail_gc,
            retry=self.retries,
            should_retry=should_retry,
        )

    async def prefetch_list(self, filters: SummaryFilters | None = None) -> None:
        """Warm the cache for a list query, e.g. the next page."""
        filters = filters or SummaryFilters()
        await self.cache.prefetch(
            SummaryKeys.list_key(filters),
            lambda: summary_api.list_summaries(self.client, filters),
            stale_time=self.list_stale,
            gc_time=self.list_gc,
            retry=self.retries,
            should_retry=should_retry,
        )

    async def prefetch_detail(self, summary_id: str) -> None:
        """Warm the cache for a summary, e.g. on hover."""
        if not summary_id:
            return
        await self.cache.prefetch(
            SummaryKeys.detail_key(summary_id),
            lambda: summary_api.get_summary(self.client, summary_id),
            stale_time=self.detail_stale,
            gc_time=self.detail_gc,
            retry=self.retries,
            should_retry=should_retry,
        )

    def get_cached_detail(self, summary_id: str) -> SummaryWithUser | None:
        """Read a cached summary without fetching."""
        return self.cache.get_data(SummaryKeys.detail_key(summary_id))

    def get_cached_list(
        self, filters: SummaryFilters | None = None,
    ) -> SummaryListResponse | None:
        """Read a cached list without fetching."""
        return self.cache.get_data(SummaryKeys.list_key(filters or SummaryFilters()))

    # --- Mutations ---

    async def create(self, data: SummaryCreate) -> SummaryWithUser:
        """Create a summary, then mark lists stale and seed its detail entry."""
        summary = await summary_api.create_summary(self.client, data)
        self.invalidate_lists()
        self._set_detail(summary)
        logger.debug("summary_cache_created id=%s", summary.id)
        return summary

    async def update(self, summary_id: str, data: SummaryUpdate) -> SummaryWithUser:
        """Update a summary, then mark lists stale and refresh its detail entry."""
        summary = await summary_api.update_summary(self.client, summary_id, data)
        self.invalidate_lists()
        self._set_detail(summary)
        self.cache.invalidate(SummaryKeys.detail_key(summary_id))
        logger.debug("summary_cache_updated id=%s", summary_id)
        return summary

    async def delete(self, summary_id: str) -> bool:
        """
        Delete a summary, then drop its detail entry and mark lists stale.

        Returns:
            False if the server declined, in which case the cache is untouched.
        """
        deleted = await summary_api.delete_summary(self.client, summary_id)
        if deleted:
            self.cache.remove(SummaryKeys.detail_key(summary_id))
            self.invalidate_lists()
            logger.debug("summary_cache_deleted id=%s", summary_id)
        return deleted

    # --- Direct cache manipulation ---

    def invalidate_lists(self) -> None:
        """Mark every cached list stale; data stays readable until refetched."""
        self.cache.invalidate(SummaryKeys.LISTS)

    def invalidate_all(self) -> None:
        """Mark every cached summary query stale."""
        self.cache.invalidate(SummaryKeys.ALL)

    def update_detail_cache(
        self,
        summary_id: str,
        updater: Callable[[SummaryWithUser], SummaryWithUser],
    ) -> SummaryWithUser | None:
        """
        Apply `updater` to a cached summary in place of a refetch.

        No-op when the summary is not cached.
        """
        current = self.get_cached_detail(summary_id)
        if current is None:
            return None
        updated = updater(current)
        self._set_detail(updated)
        return updated

    def add_to_list_cache(self, filters: SummaryFilters, summary: SummaryWithUser) -> None:
        """
        Prepend a summary to a cached list and count it in the total.

        No-op when that list is not cached.
        """
        key = SummaryKeys.list_key(filters)
        current: SummaryListResponse | None = self.cache.get_data(key)
        if current is None:
            return
        pagination = current.pagination
        updated = SummaryListResponse(
            summaries=[summary, *current.summaries],
            pagination=Pagination.build(pagination.page, pagination.limit, pagination.total + 1),
        )
        self.cache.set_data(key, updated, stale_time=self.list_stale, gc_time=self.list_gc)

    def _set_detail(self, summary: SummaryWithUser) -> None:
        self.cache.set_data(
            SummaryKeys.detail_key(summary.id),
            summary,
            stale_time=self.detail_stale,
            gc_time=self.detail_gc,
        )
