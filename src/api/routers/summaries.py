"""Summary CRUD endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import CurrentUser, get_current_user, get_gateway, get_optional_user
from core.gateway import GatewayClient
from schemas.errors import ERROR_RESPONSES
from schemas.summary import (
    SummaryCreate,
    SummaryDeleteResponse,
    SummaryEnvelope,
    SummaryListResponse,
    SummaryUpdate,
)
from services import summary_service
from services.exceptions import SummaryNotFoundError

router = APIRouter(prefix="/api/summaries", tags=["summaries"], responses=ERROR_RESPONSES)


@router.get("", response_model=SummaryListResponse)
async def list_summaries(
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=10, ge=1, le=100, description="Page size"),
    search: str | None = Query(default=None, description="Match name or description (case-insensitive)"),  # noqa: E501
    user_id: str | None = Query(default=None, description="Only summaries owned by this user"),
    sort_by: str = Query(default="created_at", description="Sort field; unknown fields sort by created_at desc"),  # noqa: E501
    sort_order: str = Query(default="desc", description="'asc' or 'desc'"),
    current_user: CurrentUser | None = Depends(get_optional_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> SummaryListResponse:
    """
    List summaries with their owners' names.

    - **search**: Substring match on name or description
    - **user_id**: Restrict to one owner's summaries
    - **sort_by**: created_at (default), updated_at, upload_date, last_edited_at or name
    - **sort_order**: asc or desc (default)
    """
    return await summary_service.list_summaries(
        gateway,
        current_user.access_token if current_user else None,
        page=page,
        limit=limit,
        search=search or None,
        user_id=user_id or None,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("", response_model=SummaryEnvelope, status_code=201)
async def create_summary(
    data: SummaryCreate,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> SummaryEnvelope:
    """Create a new summary owned by the caller."""
    summary = await summary_service.create_summary(
        gateway, current_user.access_token, current_user.id, data,
    )
    return SummaryEnvelope(summary=summary)


@router.get("/{summary_id}", response_model=SummaryEnvelope)
async def get_summary(
    summary_id: str,
    current_user: CurrentUser | None = Depends(get_optional_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> SummaryEnvelope:
    """Get a single summary by ID."""
    try:
        summary = await summary_service.get_summary(
            gateway, current_user.access_token if current_user else None, summary_id,
        )
    except SummaryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return SummaryEnvelope(summary=summary)


@router.put("/{summary_id}", response_model=SummaryEnvelope)
async def update_summary(
    summary_id: str,
    data: SummaryUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> SummaryEnvelope:
    """Update a summary owned by the caller. Omitted fields are left unchanged."""
    try:
        summary = await summary_service.update_summary(
            gateway, current_user.access_token, current_user.id, summary_id, data,
        )
    except SummaryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return SummaryEnvelope(summary=summary)


@router.delete("/{summary_id}", response_model=SummaryDeleteResponse)
async def delete_summary(
    summary_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> SummaryDeleteResponse:
    """Delete a summary owned by the caller, returning its file URLs for cleanup."""
    try:
        return await summary_service.delete_summary(
            gateway, current_user.access_token, current_user.id, summary_id,
        )
    except SummaryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
