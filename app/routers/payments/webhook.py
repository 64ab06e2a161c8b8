"""Midtrans Webhook Router - Handles Midtrans payment notifications."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed

from .schemas import WebhookAck
from .service import process_midtrans_webhook as service_process_midtrans_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments/webhook", tags=["Midtrans Webhooks"])


@router.post("", response_model=WebhookAck)
async def midtrans_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Midtrans webhook with unparseable body")
        return WebhookAck(status="invalid_payload")
    if not isinstance(payload, dict):
        return WebhookAck(status="invalid_payload")
    return await service_process_midtrans_webhook(db, payload=payload, feed=feed)


@router.get("")
async def midtrans_webhook_liveness():
    """Liveness check used when registering the URL in the Midtrans dashboard."""
    return {"status": "ok", "message": "Midtrans webhook endpoint is active"}
