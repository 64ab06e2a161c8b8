"""Game session repository layer."""

from sqlalchemy import desc, func, select, update

from app.models.queue import QueueEntry
from app.models.session import GameSession, SessionPlayer
from app.models.settings import NamespaceSettings


async def get_settings_for_streamer(db, *, streamer_id: str):
    result = await db.execute(
        select(NamespaceSettings).where(NamespaceSettings.streamer_id == streamer_id)
    )
    return result.scalar_one_or_none()


async def get_entries(db, *, entry_ids, streamer_id: str):
    stmt = (
        select(QueueEntry)
        .where(QueueEntry.id.in_(list(entry_ids)), QueueEntry.streamer_id == streamer_id)
        .order_by(QueueEntry.queue_position)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalars().all()


async def get_session(db, *, session_id: int, streamer_id: str):
    stmt = (
        select(GameSession)
        .where(GameSession.id == session_id, GameSession.streamer_id == streamer_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_sessions(db, *, streamer_id: str, status=None, limit: int = 20, offset: int = 0):
    stmt = select(GameSession).where(GameSession.streamer_id == streamer_id)
    count_stmt = select(func.count(GameSession.id)).where(GameSession.streamer_id == streamer_id)
    if status:
        stmt = stmt.where(GameSession.session_status == status)
        count_stmt = count_stmt.where(GameSession.session_status == status)
    stmt = stmt.order_by(desc(GameSession.session_number)).limit(limit).offset(offset)
    stmt = stmt.execution_options(populate_existing=True)
    rows = (await db.execute(stmt)).scalars().all()
    total = (await db.execute(count_stmt)).scalar() or 0
    return rows, total


def build_snapshot(entry) -> SessionPlayer:
    return SessionPlayer(
        queue_entry_id=entry.id,
        player_name=entry.player_name,
        game_id=entry.game_id,
        game_nickname=entry.game_nickname,
        role=entry.selected_role,
        amount_paid=entry.amount or 0,
        is_mvp=False,
        joined_at=entry.joined_at,
    )


async def transition_entry(db, *, entry_id: int, from_statuses, to_status: str, require_paid: bool = False) -> bool:
    stmt = update(QueueEntry).where(
        QueueEntry.id == entry_id,
        QueueEntry.entry_status.in_(tuple(from_statuses)),
    )
    if require_paid:
        stmt = stmt.where(QueueEntry.payment_status == "completed")
    result = await db.execute(
        stmt.values(entry_status=to_status).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def transition_session(db, *, session_id: int, from_statuses, **values) -> bool:
    result = await db.execute(
        update(GameSession)
        .where(
            GameSession.id == session_id,
            GameSession.session_status.in_(tuple(from_statuses)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def mark_mvp(db, *, session_id: int, entry_id: int) -> None:
    await db.execute(
        update(SessionPlayer)
        .where(SessionPlayer.session_id == session_id, SessionPlayer.queue_entry_id == entry_id)
        .values(is_mvp=True)
        .execution_options(synchronize_session=False)
    )
