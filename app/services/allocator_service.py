"""
Allocator Service - hands out queue positions and session numbers.

Both sequences live in `sequence_counters`. A value is reserved with a
compare-and-set on the counter row inside the caller's transaction, so the
reservation commits or rolls back together with the row that uses it. Reading
the current max and adding one is not enough under concurrent registrations.
"""
import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from app.models.counters import (
    QUEUE_POSITION_SCOPE,
    SESSION_NUMBER_SCOPE,
    SequenceCounter,
)
from app.models.queue import QueueEntry
from app.models.session import GameSession
from core.errors import CapacityError, ConsistencyConflict

logger = logging.getLogger(__name__)


async def _current_max(db: AsyncSession, scope: str, scope_key: str) -> int:
    if scope == QUEUE_POSITION_SCOPE:
        stmt = select(func.max(QueueEntry.queue_position)).where(
            QueueEntry.namespace_id == int(scope_key)
        )
    elif scope == SESSION_NUMBER_SCOPE:
        stmt = select(func.max(GameSession.session_number)).where(
            GameSession.streamer_id == scope_key
        )
    else:
        raise ValueError(f"Unknown sequence scope: {scope}")
    result = await db.execute(stmt)
    return result.scalar() or 0


async def _read_counter(db: AsyncSession, scope: str, scope_key: str):
    stmt = select(SequenceCounter.last_value).where(
        SequenceCounter.scope == scope,
        SequenceCounter.scope_key == scope_key,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _ensure_counter(db: AsyncSession, scope: str, scope_key: str) -> int:
    """Return the counter's last value, creating the row on first use."""
    current = await _read_counter(db, scope, scope_key)
    if current is not None:
        return current

    seed = await _current_max(db, scope, scope_key)
    try:
        async with db.begin_nested():
            db.add(SequenceCounter(scope=scope, scope_key=scope_key, last_value=seed))
    except IntegrityError:
        # Another allocator created the row first; use theirs
        logger.debug("Counter %s/%s created concurrently", scope, scope_key)

    current = await _read_counter(db, scope, scope_key)
    if current is None:
        raise ConsistencyConflict(f"Counter {scope}/{scope_key} could not be created")
    return current


async def allocate_next(
    db: AsyncSession,
    scope: str,
    scope_key: str,
    max_attempts: Optional[int] = None,
) -> int:
    """
    Reserve the next value of a sequence.

    Args:
        db: Async database session (the caller commits)
        scope: QUEUE_POSITION_SCOPE or SESSION_NUMBER_SCOPE
        scope_key: Namespace id or streamer id
        max_attempts: Compare-and-set attempts before giving up

    Returns:
        The reserved value, strictly greater than any value handed out before

    Raises:
        CapacityError: If every attempt lost a race to a concurrent allocator
    """
    attempts = max_attempts or config.ALLOCATION_MAX_ATTEMPTS
    scope_key = str(scope_key)

    for attempt in range(1, attempts + 1):
        current = await _ensure_counter(db, scope, scope_key)
        candidate = current + 1
        stmt = (
            update(SequenceCounter)
            .where(
                SequenceCounter.scope == scope,
                SequenceCounter.scope_key == scope_key,
                SequenceCounter.last_value == current,
            )
            .values(last_value=candidate)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount == 1:
            if attempt > 1:
                logger.info(
                    "SEQUENCE_ALLOCATED | scope=%s | key=%s | value=%s | attempts=%s",
                    scope, scope_key, candidate, attempt,
                )
            return candidate

        logger.debug(
            "Sequence conflict on %s/%s at %s (attempt %s/%s)",
            scope, scope_key, current, attempt, attempts,
        )

    logger.error(
        "SEQUENCE_EXHAUSTED | scope=%s | key=%s | attempts=%s", scope, scope_key, attempts
    )
    raise CapacityError(
        f"Could not allocate {scope} for {scope_key} after {attempts} attempts"
    )


async def allocate_queue_position(db: AsyncSession, namespace_id: int) -> int:
    return await allocate_next(db, QUEUE_POSITION_SCOPE, str(namespace_id))


async def allocate_session_number(db: AsyncSession, streamer_id: str) -> int:
    return await allocate_next(db, SESSION_NUMBER_SCOPE, streamer_id)
