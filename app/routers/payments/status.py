"""Payment Status Router - local state first, live Midtrans lookup otherwise."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_payment_gateway

from .schemas import PaymentStatusResponse
from .service import callback_redirect_url
from .service import get_payment_status as service_get_payment_status

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_payment_gateway),
    feed=Depends(get_change_feed),
):
    return await service_get_payment_status(db, order_id=order_id, gateway=gateway, feed=feed)


@router.get("/callback")
async def payment_callback(order_id: str = None, transaction_status: str = None):
    """E-wallet apps return the player here after paying."""
    return RedirectResponse(callback_redirect_url(order_id, transaction_status), status_code=302)


@router.post("/callback")
async def payment_callback_post(request: Request):
    try:
        body = await request.json()
    except ValueError:
        body = {}
    return RedirectResponse(
        callback_redirect_url(body.get("order_id"), body.get("transaction_status")),
        status_code=302,
    )
