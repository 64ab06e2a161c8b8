"""Payments repository layer."""

from sqlalchemy import func, select

from app.models.donor import DonorAggregate
from app.models.queue import ACTIVE_ENTRY_STATUSES, QueueEntry
from app.models.settings import NamespaceSettings


async def get_namespace_settings(db, *, namespace_id: int):
    result = await db.execute(
        select(NamespaceSettings).where(NamespaceSettings.id == namespace_id)
    )
    return result.scalar_one_or_none()


async def count_active_entries(db, *, namespace_id: int) -> int:
    stmt = select(func.count(QueueEntry.id)).where(
        QueueEntry.namespace_id == namespace_id,
        QueueEntry.entry_status.in_(ACTIVE_ENTRY_STATUSES),
        QueueEntry.payment_status.in_(("pending", "completed")),
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def is_donor_blocked(db, *, streamer_id: str, game_id: str) -> bool:
    stmt = select(DonorAggregate.is_blocked).where(
        DonorAggregate.streamer_id == streamer_id,
        DonorAggregate.game_id == game_id,
    )
    result = await db.execute(stmt)
    return bool(result.scalar_one_or_none())


def registration_snapshot(request) -> dict:
    """Player profile columns of a QueueEntry, as submitted."""
    return dict(
        player_name=request.player_name.strip(),
        game_id=request.game_id.strip(),
        game_nickname=request.game_nickname.strip(),
        selected_role=request.selected_role,
        email=request.email or None,
        phone=request.phone or None,
    )


def build_queue_entry(
    *,
    settings,
    request,
    order_id: str,
    queue_position: int,
    custom_data: dict,
):
    return QueueEntry(
        namespace_id=settings.id,
        streamer_id=settings.streamer_id,
        **registration_snapshot(request),
        amount=settings.price_per_slot,
        currency=settings.currency or "IDR",
        payment_status="pending",
        payment_id=order_id,
        payment_method=request.payment_method,
        queue_position=queue_position,
        entry_status="waiting",
        custom_data=custom_data,
    )
