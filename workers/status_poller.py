"""
Payment status poller.

Pull-based fallback for late or missing Midtrans webhooks: pending entries
older than STATUS_POLL_MIN_AGE_SECONDS are looked up at the gateway and the
answer goes through the same apply step as a webhook. Recorded orphan
charges (paid orders whose entry was never saved) are polled the same way.
Runs as an APScheduler interval job inside the API process, or once per call from
scripts/poll_pending_payments.py and /internal/poll-payments.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select

import config
from app.db import AsyncSessionLocal
from app.models.queue import QueueEntry
from app.services.change_feed import get_change_feed
from app.services.midtrans_service import MidtransGateway
from app.services.orphan_service import find_open_orphans
from app.services.reconciliation_service import apply_gateway_status
from core.errors import GatewayError
from core.ports.feed import ChangeFeedPort
from core.ports.gateway import PaymentGatewayPort
from core.schemas import EntryCustomData

logger = logging.getLogger(__name__)

POLL_JOB_ID = "payment_status_poll"

scheduler = AsyncIOScheduler()


async def find_pending_orders(db, *, now: datetime, limit: int) -> List[Dict[str, Any]]:
    min_age = now - timedelta(seconds=config.STATUS_POLL_MIN_AGE_SECONDS)
    # Nothing pending survives past the longest gateway expiry plus grace
    max_age = now - timedelta(hours=config.BANK_EXPIRY_HOURS + config.STATUS_POLL_GRACE_HOURS)
    stmt = (
        select(QueueEntry)
        .where(
            QueueEntry.payment_status == "pending",
            QueueEntry.joined_at <= min_age,
            QueueEntry.joined_at >= max_age,
        )
        .order_by(QueueEntry.joined_at)
        .limit(limit)
    )
    result = await db.execute(stmt)
    pending = [
        {
            "order_id": entry.payment_id,
            "joined_at": entry.joined_at,
            "gateway_status": EntryCustomData.from_column(entry.custom_data).gateway_status,
        }
        for entry in result.scalars().all()
    ]

    # Charges whose entry was never saved are only reachable by order id
    orphans = await find_open_orphans(db, min_age=min_age, max_age=max_age, limit=limit)
    pending.extend(
        {
            "order_id": orphan.order_id,
            "joined_at": orphan.created_at,
            "gateway_status": EntryCustomData.from_column(orphan.custom_data).gateway_status,
        }
        for orphan in orphans
    )
    pending.sort(key=lambda item: item["joined_at"])
    return pending[:limit]


def _is_unresolved_capture(transaction_status: Optional[str], fraud_status: Optional[str]) -> bool:
    return (transaction_status or "").lower() == "capture" and (fraud_status or "").lower() != "accept"


async def run_status_poll(
    *,
    gateway: PaymentGatewayPort,
    feed: ChangeFeedPort,
    session_factory=None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Run one poll pass. Returns counts of checked/updated/unchanged/errors/capture_alerts."""
    session_factory = session_factory or AsyncSessionLocal
    now = now or datetime.utcnow()
    summary = {"checked": 0, "updated": 0, "unchanged": 0, "errors": 0, "capture_alerts": 0}

    async with session_factory() as db:
        pending = await find_pending_orders(db, now=now, limit=config.STATUS_POLL_BATCH_SIZE)

    if not pending:
        logger.debug("No pending payments to poll")
        return summary

    alert_after = timedelta(minutes=config.CAPTURE_ALERT_AFTER_MINUTES)
    for item in pending:
        order_id = item["order_id"]
        summary["checked"] += 1
        stored = item["gateway_status"]
        transaction_status = stored.transaction_status if stored else None
        fraud_status = stored.fraud_status if stored else None

        try:
            data = await gateway.get_status(order_id)
            transaction_status = data.get("transaction_status")
            fraud_status = data.get("fraud_status")
            async with session_factory() as db:
                result = await apply_gateway_status(
                    db,
                    order_id=order_id,
                    transaction_status=transaction_status,
                    fraud_status=fraud_status,
                    payment_type=data.get("payment_type"),
                    gross_amount=data.get("gross_amount"),
                    status_code=data.get("status_code"),
                    source="poll",
                    feed=feed,
                )
            if result.outcome == "processed":
                summary["updated"] += 1
            else:
                summary["unchanged"] += 1
        except GatewayError as e:
            summary["errors"] += 1
            logger.warning("Status poll for %s failed at gateway: %s", order_id, e.message)
        except Exception as e:
            summary["errors"] += 1
            logger.error("Status poll for %s failed: %s", order_id, e, exc_info=True)
            continue

        if _is_unresolved_capture(transaction_status, fraud_status) and now - item["joined_at"] >= alert_after:
            summary["capture_alerts"] += 1
            logger.warning(
                "UNRESOLVED_CAPTURE | order_id=%s | fraud_status=%s | age_minutes=%d",
                order_id, fraud_status, (now - item["joined_at"]).total_seconds() // 60,
            )

    logger.info(
        "STATUS_POLL_DONE | checked=%s | updated=%s | unchanged=%s | errors=%s | capture_alerts=%s",
        summary["checked"], summary["updated"], summary["unchanged"],
        summary["errors"], summary["capture_alerts"],
    )
    return summary


async def _scheduled_poll():
    try:
        await run_status_poll(gateway=MidtransGateway(), feed=get_change_feed())
    except Exception as e:
        logger.error("Scheduled payment status poll failed: %s", e, exc_info=True)


def start_status_poller():
    """
    Start the background poll job.
    This should be called when the application starts.
    """
    if scheduler.running:
        logger.warning("Status poller is already running")
        return

    scheduler.add_job(
        _scheduled_poll,
        IntervalTrigger(seconds=config.STATUS_POLL_INTERVAL_SECONDS),
        id=POLL_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Status poller started (every %ss)", config.STATUS_POLL_INTERVAL_SECONDS)


def stop_status_poller():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Status poller stopped")
