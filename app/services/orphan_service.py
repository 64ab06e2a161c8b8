"""
Orphan Service - charges whose queue entry could not be saved.

create_payment records an OrphanPayment when the entry insert fails after
the gateway already accepted the charge. The reconciliation step resolves it
once a gateway status arrives for the order id, from a webhook, the status
poller or a status lookup.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.queue import OrphanPayment, QueueEntry
from app.services.allocator_service import allocate_queue_position

logger = logging.getLogger(__name__)


async def record_orphan_payment(
    db: AsyncSession,
    *,
    order_id: str,
    namespace_id: int,
    streamer_id: str,
    amount: int,
    currency: str,
    payment_method: Optional[str],
    registration: Dict[str, Any],
    custom_data: Dict[str, Any],
    error: str,
) -> Optional[int]:
    """
    Persist the charge in its own transaction. Returns the orphan id, or
    None when the database refused this write too.
    """
    orphan = OrphanPayment(
        order_id=order_id,
        namespace_id=namespace_id,
        streamer_id=streamer_id,
        amount=amount,
        currency=currency or "IDR",
        payment_method=payment_method,
        registration=registration,
        custom_data=custom_data,
        payment_status="pending",
        error=error[:1000],
    )
    try:
        db.add(orphan)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "ORPHAN_PAYMENT_UNRECORDED | order_id=%s | namespace=%s | error=%s: %s",
            order_id, namespace_id, type(e).__name__, e,
            exc_info=True,
        )
        return None

    logger.warning("ORPHAN_PAYMENT_RECORDED | order_id=%s | orphan=%s", order_id, orphan.id)
    return orphan.id


async def get_open_orphan(db: AsyncSession, order_id: str) -> Optional[OrphanPayment]:
    stmt = (
        select(OrphanPayment)
        .where(OrphanPayment.order_id == order_id, OrphanPayment.queue_entry_id.is_(None))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def find_open_orphans(
    db: AsyncSession, *, min_age: datetime, max_age: datetime, limit: int
) -> List[OrphanPayment]:
    stmt = (
        select(OrphanPayment)
        .where(
            OrphanPayment.queue_entry_id.is_(None),
            OrphanPayment.payment_status == "pending",
            OrphanPayment.created_at <= min_age,
            OrphanPayment.created_at >= max_age,
        )
        .order_by(OrphanPayment.created_at)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def close_orphan(db: AsyncSession, *, orphan_id: int, new_status: str, now: datetime) -> bool:
    """Mark a still-pending orphan as failed. False when another writer moved it first."""
    result = await db.execute(
        update(OrphanPayment)
        .where(
            OrphanPayment.id == orphan_id,
            OrphanPayment.queue_entry_id.is_(None),
            OrphanPayment.payment_status == "pending",
        )
        .values(payment_status=new_status, resolved_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    return True


async def recover_orphan(db: AsyncSession, orphan: OrphanPayment, *, now: datetime) -> Optional[QueueEntry]:
    """
    Re-create the queue entry of an orphan with its recorded payment status.

    The caller applies the new gateway status to the returned entry through
    the normal path. Returns None when a concurrent writer recovered or
    moved the orphan first; re-read by order id in that case.
    """
    orphan_id = orphan.id
    order_id = orphan.order_id
    namespace_id = orphan.namespace_id
    current_status = orphan.payment_status
    registration = dict(orphan.registration or {})
    values = dict(
        namespace_id=namespace_id,
        streamer_id=orphan.streamer_id,
        player_name=registration.get("player_name") or "",
        game_id=registration.get("game_id") or "",
        game_nickname=registration.get("game_nickname"),
        selected_role=registration.get("selected_role"),
        email=registration.get("email"),
        phone=registration.get("phone"),
        amount=orphan.amount,
        currency=orphan.currency or "IDR",
        payment_status=current_status,
        payment_id=order_id,
        payment_method=orphan.payment_method,
        entry_status="waiting" if current_status == "pending" else "cancelled",
        custom_data=dict(orphan.custom_data or {}),
        joined_at=orphan.created_at,
    )

    try:
        # Paid players join at the back of the queue even if it filled up since
        position = await allocate_queue_position(db, namespace_id)
        entry = QueueEntry(queue_position=position, **values)
        db.add(entry)
        await db.flush()

        result = await db.execute(
            update(OrphanPayment)
            .where(
                OrphanPayment.id == orphan_id,
                OrphanPayment.queue_entry_id.is_(None),
                OrphanPayment.payment_status == current_status,
            )
            .values(queue_entry_id=entry.id, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            return None
        await db.commit()
    except IntegrityError:
        # The entry for this order id was inserted by a concurrent recovery
        await db.rollback()
        logger.info("Orphan %s was recovered concurrently", order_id)
        return None
    except Exception:
        await db.rollback()
        raise

    logger.warning(
        "ORPHAN_PAYMENT_RECOVERED | order_id=%s | entry=%s | position=%s",
        order_id, entry.id, entry.queue_position,
    )
    return entry
