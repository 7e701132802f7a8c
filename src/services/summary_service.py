"""
Service layer for summary operations.

All reads and writes go through the gateway with the caller's access token,
so the gateway's row-level security is the final word on ownership. Update
and delete also filter on `user_id` so a non-owner sees "not found" rather
than touching another user's row.
"""
import logging
from datetime import UTC, datetime

from core.gateway import GatewayClient, GatewayError
from schemas.summary import (
    SUMMARY_COLUMNS,
    SUMMARY_SORT_FIELDS,
    Pagination,
    SummaryCreate,
    SummaryDeleteResponse,
    SummaryListResponse,
    SummaryOwner,
    SummaryResponse,
    SummaryUpdate,
    SummaryWithUser,
)
from services.exceptions import SummaryNotFoundError
from services.utils import ilike_any, page_range

logger = logging.getLogger(__name__)

SUMMARIES_TABLE = "summaries"
# View joining each summary with its owner's name and grade
SUMMARIES_VIEW = "summaries_with_users"
USERS_TABLE = "users"

VIEW_COLUMNS = f"{SUMMARY_COLUMNS},user_full_name,user_grade"
SEARCH_COLUMNS = ("name", "description")


async def list_summaries(
    gateway: GatewayClient,
    token: str | None,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    user_id: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> SummaryListResponse:
    """
    List summaries with owner names, filtered, sorted and paginated.

    Args:
        gateway: Gateway client.
        token: Caller's access token, or None for anonymous reads.
        page: 1-based page number.
        limit: Page size.
        search: Case-insensitive substring matched against name or description.
        user_id: Only summaries owned by this user.
        sort_by: One of SUMMARY_SORT_FIELDS; anything else sorts by newest first.
        sort_order: 'asc' or 'desc'.
    """
    if sort_by in SUMMARY_SORT_FIELDS:
        order = (sort_by, sort_order == "asc")
    else:
        order = ("created_at", False)

    result = await gateway.select(
        SUMMARIES_VIEW,
        token,
        columns=VIEW_COLUMNS,
        filters={"user_id": user_id} if user_id else None,
        or_filter=ilike_any(SEARCH_COLUMNS, search) if search else None,
        order=order,
        range_=page_range(page, limit),
        count=True,
    )
    summaries = [SummaryWithUser.model_validate(row) for row in result.rows]
    total = result.count or 0
    logger.debug(
        "summaries_listed page=%s limit=%s total=%s search=%s", page, limit, total, search,
    )
    return SummaryListResponse(
        summaries=summaries,
        pagination=Pagination.build(page, limit, total),
    )


async def get_summary(
    gateway: GatewayClient,
    token: str | None,
    summary_id: str,
) -> SummaryWithUser:
    """
    Get a single summary with its owner's name.

    Raises:
        SummaryNotFoundError: If no summary has this id.
    """
    try:
        row = await gateway.select_single(
            SUMMARIES_VIEW, token, columns=VIEW_COLUMNS, filters={"id": summary_id},
        )
    except GatewayError as e:
        if e.is_not_found:
            raise SummaryNotFoundError() from e
        raise
    return SummaryWithUser.model_validate(row)


async def _with_owner(
    gateway: GatewayClient,
    token: str,
    summary: SummaryResponse,
) -> SummaryWithUser:
    """Attach the owner's name to a freshly written summary row."""
    owner: SummaryOwner | None = None
    try:
        row = await gateway.select_single(
            USERS_TABLE, token, columns="id,full_name", filters={"id": summary.user_id},
        )
        owner = SummaryOwner.model_validate(row)
    except GatewayError as e:
        if not e.is_not_found:
            raise
    return SummaryWithUser(**summary.model_dump(), user=owner)


async def create_summary(
    gateway: GatewayClient,
    token: str,
    user_id: str,
    data: SummaryCreate,
) -> SummaryWithUser:
    """Create a summary owned by `user_id`."""
    row = await gateway.insert(
        SUMMARIES_TABLE,
        {
            "name": data.name,
            "description": data.description,
            "user_id": user_id,
            "file_urls": data.file_urls,
        },
        token,
    )
    summary = SummaryResponse.model_validate(row)
    logger.info(
        "summary_created id=%s user_id=%s files=%s", summary.id, user_id, len(data.file_urls),
    )
    return await _with_owner(gateway, token, summary)


async def update_summary(
    gateway: GatewayClient,
    token: str,
    user_id: str,
    summary_id: str,
    data: SummaryUpdate,
) -> SummaryWithUser:
    """
    Update the fields of a summary that are present in `data`.

    Edit timestamps are stamped on every update.

    Raises:
        SummaryNotFoundError: If the summary is absent or not owned by `user_id`.
    """
    now = datetime.now(UTC).isoformat()
    updates = data.model_dump(exclude_unset=True)
    updates["last_edited_at"] = now
    updates["updated_at"] = now

    try:
        row = await gateway.update(
            SUMMARIES_TABLE,
            updates,
            {"id": summary_id, "user_id": user_id},
            token,
        )
    except GatewayError as e:
        if e.is_not_found:
            raise SummaryNotFoundError(
                "Summary not found or you don't have permission to update it",
            ) from e
        raise
    summary = SummaryResponse.model_validate(row)
    logger.info("summary_updated id=%s fields=%s", summary_id, sorted(updates))
    return await _with_owner(gateway, token, summary)


async def delete_summary(
    gateway: GatewayClient,
    token: str,
    user_id: str,
    summary_id: str,
) -> SummaryDeleteResponse:
    """
    Delete a summary and report the file URLs it referenced.

    Stored files are not removed here; the caller decides whether to clean
    them up.

    Raises:
        SummaryNotFoundError: If the summary is absent or not owned by `user_id`.
    """
    filters = {"id": summary_id, "user_id": user_id}
    try:
        row = await gateway.select_single(
            SUMMARIES_TABLE, token, columns="file_urls,user_id", filters=filters,
        )
    except GatewayError as e:
        if e.is_not_found:
            raise SummaryNotFoundError(
                "Summary not found or you don't have permission to delete it",
            ) from e
        raise

    await gateway.delete(SUMMARIES_TABLE, filters, token)
    file_urls = row.get("file_urls") or []
    logger.info("summary_deleted id=%s user_id=%s", summary_id, user_id)
    return SummaryDeleteResponse(
        message="Summary deleted successfully",
        deleted_file_urls=file_urls,
    )
