"""MVP Router - MVP standings and the reward claim ledger."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_current_streamer

from .schemas import MvpListResponse, RewardClaimResponse
from .service import claim_reward, fulfill_claim, list_mvp_records

router = APIRouter(prefix="/mvp", tags=["MVP"])


@router.get("", response_model=MvpListResponse)
async def mvp_index(
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_mvp_records(db, streamer_id=streamer_id)


@router.post("/{record_id}/claims", response_model=RewardClaimResponse)
async def create_claim(
    record_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await claim_reward(db, record_id=record_id, streamer_id=streamer_id, feed=feed)


@router.post("/claims/{claim_id}/fulfill", response_model=RewardClaimResponse)
async def fulfill(
    claim_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await fulfill_claim(db, claim_id=claim_id, streamer_id=streamer_id, feed=feed)
