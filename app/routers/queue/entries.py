"""Queue Entries Router - operator actions and the public queue view."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_current_streamer

from .schemas import EntryActionResponse, PublicQueueResponse, QueueListResponse
from .service import (
    cancel_entry,
    deselect_entry,
    get_public_queue,
    list_queue,
    mark_no_show,
    select_entry,
)

router = APIRouter(prefix="/queue", tags=["Queue"])

EntryStatusFilter = Literal["waiting", "selected", "playing", "completed", "cancelled", "no_show"]
PaymentStatusFilter = Literal["pending", "completed", "failed", "refunded"]


@router.get("/entries", response_model=QueueListResponse)
async def list_entries(
    entry_status: Optional[EntryStatusFilter] = None,
    payment_status: Optional[PaymentStatusFilter] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_queue(
        db,
        streamer_id=streamer_id,
        entry_status=entry_status,
        payment_status=payment_status,
        limit=limit,
        offset=offset,
    )


@router.get("/public/{streamer_id}", response_model=PublicQueueResponse)
async def public_queue(streamer_id: str, db: AsyncSession = Depends(get_async_db)):
    return await get_public_queue(db, streamer_id=streamer_id)


@router.post("/entries/{entry_id}/select", response_model=EntryActionResponse)
async def select(
    entry_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await select_entry(db, entry_id=entry_id, streamer_id=streamer_id, feed=feed)


@router.post("/entries/{entry_id}/deselect", response_model=EntryActionResponse)
async def deselect(
    entry_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await deselect_entry(db, entry_id=entry_id, streamer_id=streamer_id, feed=feed)


@router.post("/entries/{entry_id}/cancel", response_model=EntryActionResponse)
async def cancel(
    entry_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await cancel_entry(db, entry_id=entry_id, streamer_id=streamer_id, feed=feed)


@router.post("/entries/{entry_id}/no-show", response_model=EntryActionResponse)
async def no_show(
    entry_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await mark_no_show(db, entry_id=entry_id, streamer_id=streamer_id, feed=feed)
