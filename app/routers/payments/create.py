"""Create Payment Router - charges a registration and queues the player."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_payment_gateway

from .schemas import CreatePaymentRequest, CreatePaymentResponse
from .service import create_payment as service_create_payment

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create", response_model=CreatePaymentResponse)
async def create_payment(
    request: CreatePaymentRequest,
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_payment_gateway),
    feed=Depends(get_change_feed),
):
    return await service_create_payment(db, request=request, gateway=gateway, feed=feed)
