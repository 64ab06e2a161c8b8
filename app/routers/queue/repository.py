"""Queue repository layer."""

from sqlalchemy import func, select, update

from app.models.queue import ACTIVE_ENTRY_STATUSES, QueueEntry
from app.models.settings import NamespaceSettings


async def get_settings_for_streamer(db, *, streamer_id: str):
    result = await db.execute(
        select(NamespaceSettings).where(NamespaceSettings.streamer_id == streamer_id)
    )
    return result.scalar_one_or_none()


async def count_active_entries(db, *, namespace_id: int) -> int:
    result = await db.execute(
        select(func.count(QueueEntry.id)).where(
            QueueEntry.namespace_id == namespace_id,
            QueueEntry.entry_status.in_(ACTIVE_ENTRY_STATUSES),
            QueueEntry.payment_status.in_(("pending", "completed")),
        )
    )
    return result.scalar() or 0


async def count_selected(db, *, streamer_id: str) -> int:
    result = await db.execute(
        select(func.count(QueueEntry.id)).where(
            QueueEntry.streamer_id == streamer_id,
            QueueEntry.entry_status == "selected",
        )
    )
    return result.scalar() or 0


async def get_entry(db, *, entry_id: int, streamer_id: str):
    stmt = (
        select(QueueEntry)
        .where(QueueEntry.id == entry_id, QueueEntry.streamer_id == streamer_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_entries(
    db,
    *,
    streamer_id: str,
    entry_status=None,
    payment_status=None,
    limit: int = 100,
    offset: int = 0,
):
    stmt = select(QueueEntry).where(QueueEntry.streamer_id == streamer_id)
    count_stmt = select(func.count(QueueEntry.id)).where(QueueEntry.streamer_id == streamer_id)
    if entry_status:
        stmt = stmt.where(QueueEntry.entry_status == entry_status)
        count_stmt = count_stmt.where(QueueEntry.entry_status == entry_status)
    if payment_status:
        stmt = stmt.where(QueueEntry.payment_status == payment_status)
        count_stmt = count_stmt.where(QueueEntry.payment_status == payment_status)

    stmt = stmt.order_by(QueueEntry.queue_position).limit(limit).offset(offset)
    stmt = stmt.execution_options(populate_existing=True)
    rows = (await db.execute(stmt)).scalars().all()
    total = (await db.execute(count_stmt)).scalar() or 0
    return rows, total


async def list_public_queue(db, *, streamer_id: str):
    stmt = (
        select(QueueEntry)
        .where(
            QueueEntry.streamer_id == streamer_id,
            QueueEntry.payment_status == "completed",
            QueueEntry.entry_status.in_(ACTIVE_ENTRY_STATUSES),
        )
        .order_by(QueueEntry.queue_position)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalars().all()


async def transition_entry(db, *, entry_id: int, from_statuses, to_status: str, **conditions) -> bool:
    """Conditionally move an entry between entry statuses. Returns False if it lost a race."""
    stmt = update(QueueEntry).where(
        QueueEntry.id == entry_id,
        QueueEntry.entry_status.in_(tuple(from_statuses)),
    )
    for column, value in conditions.items():
        stmt = stmt.where(getattr(QueueEntry, column) == value)
    result = await db.execute(
        stmt.values(entry_status=to_status).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
