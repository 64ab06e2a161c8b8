"""
MVP Service - MVP aggregates and reward arithmetic
"""
import logging
from typing import Iterable, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.donor import MvpRecord

logger = logging.getLogger(__name__)


def rewards_earned(total_mvp_wins: int, win_threshold: int) -> int:
    if win_threshold <= 0:
        return 0
    return total_mvp_wins // win_threshold


def pending_rewards(total_mvp_wins: int, win_threshold: int, claims_recorded: int) -> int:
    return max(rewards_earned(total_mvp_wins, win_threshold) - claims_recorded, 0)


async def get_mvp_record(db: AsyncSession, streamer_id: str, player_identifier: str) -> Optional[MvpRecord]:
    stmt = select(MvpRecord).where(
        MvpRecord.streamer_id == streamer_id,
        MvpRecord.player_identifier == player_identifier,
    )
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def _increment(db: AsyncSession, record_id: int, player_name: str, is_mvp: bool) -> None:
    values = dict(
        total_games_played=MvpRecord.total_games_played + 1,
        player_name=player_name,
    )
    if is_mvp:
        values["total_mvp_wins"] = MvpRecord.total_mvp_wins + 1
    await db.execute(
        update(MvpRecord)
        .where(MvpRecord.id == record_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def record_game_result(
    db: AsyncSession,
    streamer_id: str,
    participants: Iterable[Tuple[str, str]],
    mvp_identifier: Optional[str] = None,
) -> None:
    """
    Add one game to every participant's MVP record and one win to the MVP's.

    Args:
        db: Async database session (the caller commits)
        streamer_id: Streamer owning the session
        participants: (player_identifier, player_name) pairs
        mvp_identifier: Player identifier of the MVP, if one was designated
    """
    for player_identifier, player_name in participants:
        is_mvp = bool(mvp_identifier) and player_identifier == mvp_identifier
        record = await get_mvp_record(db, streamer_id, player_identifier)
        if record is None:
            try:
                async with db.begin_nested():
                    db.add(
                        MvpRecord(
                            streamer_id=streamer_id,
                            player_identifier=player_identifier,
                            player_name=player_name,
                            total_games_played=1,
                            total_mvp_wins=1 if is_mvp else 0,
                        )
                    )
                continue
            except IntegrityError:
                record = await get_mvp_record(db, streamer_id, player_identifier)
        await _increment(db, record.id, player_name, is_mvp)

    if mvp_identifier:
        logger.info("MVP_RECORDED | streamer=%s | player=%s", streamer_id, mvp_identifier)
