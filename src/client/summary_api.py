"""Resource functions for summaries."""
import httpx

from client.api_client import ApiError, api_request, parse_model
from schemas.summary import (
    SummaryCreate,
    SummaryEnvelope,
    SummaryFilters,
    SummaryListResponse,
    SummaryUpdate,
    SummaryWithUser,
)

SUMMARIES_PATH = "/api/summaries"


async def list_summaries(
    client: httpx.AsyncClient,
    filters: SummaryFilters,
) -> SummaryListResponse:
    """Fetch one page of summaries."""
    body = await api_request(client, "GET", SUMMARIES_PATH, params=filters.to_params())
    return parse_model(SummaryListResponse, body, "summary list")


async def get_summary(client: httpx.AsyncClient, summary_id: str) -> SummaryWithUser | None:
    """Fetch a summary, or None if it does not exist."""
    try:
        body = await api_request(
            client, "GET", f"{SUMMARIES_PATH}/{summary_id}",
            entity_type="summary", entity_id=summary_id,
        )
    except ApiError as e:
        if e.category == "not_found":
            return None
        raise
    return parse_model(SummaryEnvelope, body, "summary").summary


async def create_summary(client: httpx.AsyncClient, data: SummaryCreate) -> SummaryWithUser:
    """Create a summary owned by the signed-in user."""
    body = await api_request(
        client, "POST", SUMMARIES_PATH, json=data.model_dump(mode="json"),
    )
    return parse_model(SummaryEnvelope, body, "summary").summary


async def update_summary(
    client: httpx.AsyncClient,
    summary_id: str,
    data: SummaryUpdate,
) -> SummaryWithUser:
    """Update the fields of a summary that were set on `data`."""
    body = await api_request(
        client, "PUT", f"{SUMMARIES_PATH}/{summary_id}",
        json=data.model_dump(mode="json", exclude_unset=True),
        entity_type="summary", entity_id=summary_id,
    )
    return parse_model(SummaryEnvelope, body, "summary").summary


async def delete_summary(client: httpx.AsyncClient, summary_id: str) -> bool:
    """
    Delete a summary.

    Returns:
        True if deleted, False if the summary is absent or not the caller's.
    """
    try:
        await api_request(
            client, "DELETE", f"{SUMMARIES_PATH}/{summary_id}",
            entity_type="summary", entity_id=summary_id,
        )
    except ApiError as e:
        if e.category in ("not_found", "forbidden"):
            return False
        raise
    return True
