"""Internal endpoints for the external cron."""

import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_change_feed, get_payment_gateway, verify_internal_secret
from workers.status_poller import run_status_poll

from .schemas import PollSummaryResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post(
    "/poll-payments",
    response_model=PollSummaryResponse,
    dependencies=[Depends(verify_internal_secret)],
)
async def poll_payments(
    gateway=Depends(get_payment_gateway),
    feed=Depends(get_change_feed),
):
    logger.info("Payment status poll triggered by external cron")
    return await run_status_poll(gateway=gateway, feed=feed)
