"""Operator payment overrides."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_current_streamer

from .schemas import ManualStatusUpdateRequest
from .service import set_payment_status_manually

router = APIRouter(prefix="/payments", tags=["Payments Admin"])


@router.put("/{order_id}/status")
async def update_payment_status(
    order_id: str,
    request: ManualStatusUpdateRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    result = await set_payment_status_manually(
        db, order_id=order_id, request=request, streamer_id=streamer_id, feed=feed
    )
    return {"success": True, **result}
