"""
Reconciliation Service - applies gateway payment statuses to queue entries.

Every path that learns a gateway status (webhook, poller, status query, admin
override) goes through apply_gateway_status, so the same ordering rules hold
no matter which one wins a race:

- payment status only moves up: pending < failed < completed < refunded
- the write is a compare-and-set on the status that was read
- the first move into `completed` writes the donation row and the donor
  aggregate in the same transaction
- an order id with no entry but a recorded orphan charge gets its entry
  re-created once the gateway reports it paid
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

import config
from app.models.queue import QueueEntry
from app.services.change_feed import publish_rows
from app.services.donor_service import apply_completed_payment, record_donation
from app.services.orphan_service import close_orphan, get_open_orphan, recover_orphan
from core.errors import ConsistencyConflict, StaleNotification
from core.schemas import EntryCustomData, GatewayStatusRecord

logger = logging.getLogger(__name__)

STATUS_PRECEDENCE = {
    "pending": 0,
    "failed": 1,
    "completed": 2,
    "refunded": 3,
}

GATEWAY_STATUS_MAP = {
    "settlement": "completed",
    "pending": "pending",
    "deny": "failed",
    "cancel": "failed",
    "expire": "failed",
    "failure": "failed",
    "refund": "refunded",
    "partial_refund": "refunded",
}


@dataclass
class ApplyResult:
    outcome: str  # processed, no_change, stale, unknown_order, ignored
    order_id: str
    previous_status: Optional[str] = None
    payment_status: Optional[str] = None
    entry_status: Optional[str] = None
    entry: Optional[QueueEntry] = None
    donation_recorded: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.outcome,
            "order_id": self.order_id,
            "previous_status": self.previous_status,
            "payment_status": self.payment_status,
            "entry_status": self.entry_status,
        }


def map_gateway_status(transaction_status: Optional[str], fraud_status: Optional[str] = None) -> Optional[str]:
    """Gateway vocabulary -> internal payment status, or None when unrecognized."""
    status = (transaction_status or "").strip().lower()
    if status == "capture":
        # Card captures only count once fraud screening accepts them
        if (fraud_status or "").strip().lower() == "accept":
            return "completed"
        return "pending"
    return GATEWAY_STATUS_MAP.get(status)


def check_transition(current: str, proposed: str) -> None:
    """Raise StaleNotification unless `proposed` outranks `current`."""
    if STATUS_PRECEDENCE.get(proposed, -1) <= STATUS_PRECEDENCE.get(current, -1):
        raise StaleNotification(
            f"Refusing {current} -> {proposed}", current_status=current, proposed_status=proposed
        )


def next_entry_status(previous_payment: str, new_payment: str, entry_status: str) -> str:
    if new_payment == "completed":
        if previous_payment == "pending" and entry_status not in ("cancelled", "no_show"):
            return "waiting"
        return entry_status
    if new_payment in ("failed", "refunded"):
        return "cancelled"
    return entry_status


def parse_gross_amount(gross_amount: Any) -> Optional[int]:
    if gross_amount is None or gross_amount == "":
        return None
    try:
        return int(Decimal(str(gross_amount)))
    except (InvalidOperation, ValueError):
        logger.warning("Unparseable gross_amount %r", gross_amount)
        return None


async def get_entry_by_order_id(db: AsyncSession, order_id: str) -> Optional[QueueEntry]:
    stmt = (
        select(QueueEntry)
        .where(QueueEntry.payment_id == order_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _record_pending_status(db: AsyncSession, entry: QueueEntry, record: GatewayStatusRecord) -> None:
    """Keep the last gateway status on a still-pending entry (used for capture alerts)."""
    custom = EntryCustomData.from_column(entry.custom_data)
    custom.gateway_status = record
    await db.execute(
        update(QueueEntry)
        .where(QueueEntry.id == entry.id, QueueEntry.payment_status == "pending")
        .values(custom_data=custom.to_column())
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def _apply_to_orphan(
    db: AsyncSession,
    orphan,
    mapped: str,
    *,
    order_id: str,
    source: str,
    feed=None,
    now: Optional[datetime] = None,
) -> Optional[ApplyResult]:
    """
    Apply a status to an order that only exists as an orphan charge.

    Returns None once the entry has been re-created (or a concurrent writer
    moved the orphan); the caller then re-reads and applies to the entry.
    """
    current = orphan.payment_status
    if mapped == current:
        logger.info("ORPHAN_PAYMENT_UNCHANGED | order_id=%s | status=%s | source=%s", order_id, current, source)
        return ApplyResult(
            outcome="no_change", order_id=order_id, previous_status=current, payment_status=current
        )

    try:
        check_transition(current, mapped)
    except StaleNotification:
        logger.info(
            "STALE_NOTIFICATION | order_id=%s | current=%s | proposed=%s | source=%s",
            order_id, current, mapped, source,
        )
        return ApplyResult(
            outcome="stale", order_id=order_id, previous_status=current, payment_status=current
        )

    now = now or datetime.utcnow()
    if mapped == "failed":
        if not await close_orphan(db, orphan_id=orphan.id, new_status=mapped, now=now):
            return None
        logger.info("ORPHAN_PAYMENT_CLOSED | order_id=%s | %s -> %s | source=%s", order_id, current, mapped, source)
        return ApplyResult(
            outcome="processed", order_id=order_id, previous_status=current, payment_status=mapped
        )

    entry = await recover_orphan(db, orphan, now=now)
    if entry is not None and feed is not None:
        await publish_rows(feed, "INSERT", entry)
    return None


async def apply_gateway_status(
    db: AsyncSession,
    *,
    order_id: str,
    transaction_status: Optional[str],
    fraud_status: Optional[str] = None,
    payment_type: Optional[str] = None,
    gross_amount: Any = None,
    status_code: Optional[str] = None,
    source: str = "webhook",
    feed=None,
    now: Optional[datetime] = None,
) -> ApplyResult:
    """
    Idempotently apply one gateway status to the entry owning `order_id`.

    Returns an ApplyResult describing what happened. Stale and unknown
    notifications are outcomes, not exceptions.

    Raises:
        ConsistencyConflict: If the compare-and-set kept losing to concurrent writers
    """
    mapped = map_gateway_status(transaction_status, fraud_status)
    if mapped is None:
        logger.warning(
            "UNMAPPED_GATEWAY_STATUS | order_id=%s | status=%s | source=%s",
            order_id, transaction_status, source,
        )
        return ApplyResult(outcome="ignored", order_id=order_id)

    record = GatewayStatusRecord(
        transaction_status=transaction_status,
        fraud_status=fraud_status,
        payment_type=payment_type,
        status_code=str(status_code) if status_code is not None else None,
        gross_amount=str(gross_amount) if gross_amount is not None else None,
        source=source,
    )
    return await apply_payment_status(
        db,
        order_id=order_id,
        new_status=mapped,
        record=record,
        gross_amount=gross_amount,
        source=source,
        feed=feed,
        now=now,
    )


async def apply_payment_status(
    db: AsyncSession,
    *,
    order_id: str,
    new_status: str,
    record: GatewayStatusRecord,
    gross_amount: Any = None,
    source: str = "webhook",
    feed=None,
    now: Optional[datetime] = None,
) -> ApplyResult:
    """Compare-and-set an internal payment status onto an entry, with retries."""
    if new_status not in STATUS_PRECEDENCE:
        raise ValueError(f"Unknown payment status: {new_status}")

    mapped = new_status
    payment_type = record.payment_type
    attempts = config.STATUS_APPLY_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        entry = await get_entry_by_order_id(db, order_id)
        if entry is None:
            orphan = await get_open_orphan(db, order_id)
            if orphan is None:
                logger.warning("UNKNOWN_ORDER | order_id=%s | source=%s", order_id, source)
                return ApplyResult(outcome="unknown_order", order_id=order_id)
            result = await _apply_to_orphan(
                db, orphan, mapped, order_id=order_id, source=source, feed=feed, now=now
            )
            if result is not None:
                return result
            continue

        current = entry.payment_status
        if mapped == current:
            if current == "pending":
                await _record_pending_status(db, entry, record)
            logger.info(
                "PAYMENT_STATUS_UNCHANGED | order_id=%s | status=%s | source=%s",
                order_id, current, source,
            )
            return ApplyResult(
                outcome="no_change",
                order_id=order_id,
                previous_status=current,
                payment_status=current,
                entry_status=entry.entry_status,
                entry=entry,
            )

        try:
            check_transition(current, mapped)
        except StaleNotification as stale:
            logger.info(
                "STALE_NOTIFICATION | order_id=%s | current=%s | proposed=%s | source=%s",
                order_id, stale.current_status, stale.proposed_status, source,
            )
            return ApplyResult(
                outcome="stale",
                order_id=order_id,
                previous_status=current,
                payment_status=current,
                entry_status=entry.entry_status,
                entry=entry,
            )

        now = now or datetime.utcnow()
        entry_status = next_entry_status(current, mapped, entry.entry_status)
        if mapped == "completed" and entry_status != "waiting":
            logger.warning(
                "PAID_INACTIVE_ENTRY | order_id=%s | entry_status=%s | previous_payment=%s",
                order_id, entry_status, current,
            )

        custom = EntryCustomData.from_column(entry.custom_data)
        custom.gateway_status = record
        values = dict(
            payment_status=mapped,
            entry_status=entry_status,
            custom_data=custom.to_column(),
            updated_at=now,
        )
        if mapped == "completed":
            values["paid_at"] = now

        donor = None
        try:
            result = await db.execute(
                update(QueueEntry)
                .where(QueueEntry.id == entry.id, QueueEntry.payment_status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                logger.info(
                    "Payment status for %s changed underneath us (attempt %s/%s)",
                    order_id, attempt, attempts,
                )
                continue

            if mapped == "completed":
                amount = parse_gross_amount(gross_amount)
                if amount is None:
                    amount = entry.amount
                elif amount != entry.amount:
                    logger.warning(
                        "AMOUNT_MISMATCH | order_id=%s | expected=%s | gateway=%s",
                        order_id, entry.amount, amount,
                    )
                await record_donation(db, entry, amount, payment_type)
                donor = await apply_completed_payment(db, entry, amount, now)

            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "PAYMENT_STATUS_APPLIED | order_id=%s | %s -> %s | entry_status=%s | source=%s",
            order_id, current, mapped, entry_status, source,
        )

        entry = await get_entry_by_order_id(db, order_id)
        if feed is not None:
            await publish_rows(feed, "UPDATE", entry, donor)

        return ApplyResult(
            outcome="processed",
            order_id=order_id,
            previous_status=current,
            payment_status=mapped,
            entry_status=entry_status,
            entry=entry,
            donation_recorded=mapped == "completed",
        )

    raise ConsistencyConflict(
        f"Could not apply {mapped} to {order_id} after {attempts} attempts"
    )
