"""Donors Router - donor aggregates and operator moderation."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_current_streamer

from .schemas import DonorListResponse, DonorResponse, ModerationRequest
from .service import list_donors, moderate_donor

router = APIRouter(prefix="/donors", tags=["Donors"])

TierFilter = Literal["bronze", "silver", "gold", "platinum", "diamond"]


@router.get("", response_model=DonorListResponse)
async def donors_index(
    tier: Optional[TierFilter] = None,
    sort: Literal["amount", "last_donation"] = "amount",
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_donors(
        db, streamer_id=streamer_id, tier=tier, sort=sort, limit=limit, offset=offset
    )


@router.put("/{donor_id}/moderation", response_model=DonorResponse)
async def update_moderation(
    donor_id: int,
    request: ModerationRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await moderate_donor(
        db, donor_id=donor_id, streamer_id=streamer_id, request=request, feed=feed
    )
