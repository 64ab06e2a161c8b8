"""Game session service layer: party start, end, cancel and bookkeeping."""

import logging
import math
from datetime import datetime
from typing import List, Optional

import config
from app.models.session import GameSession
from app.services.allocator_service import allocate_session_number
from app.services.change_feed import publish_rows
from app.services.donor_service import record_session_participation
from app.services.mvp_service import record_game_result
from core.errors import (
    InvalidStateError,
    NotFoundError,
    SessionValidationError,
    ValidationError,
)

from . import repository as sessions_repository
from .schemas import EndSessionResponse, SessionListResponse, SessionResponse

logger = logging.getLogger(__name__)

STARTABLE_ENTRY_STATUSES = ("waiting", "selected")


def duration_in_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes, half rounding up."""
    minutes = (ended_at - started_at).total_seconds() / 60.0
    return max(int(math.floor(minutes + 0.5)), 0)


async def _load_session(db, session_id: int, streamer_id: str):
    session = await sessions_repository.get_session(db, session_id=session_id, streamer_id=streamer_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session


async def start_session(db, *, streamer_id: str, request, feed, now: Optional[datetime] = None):
    """
    Commit a party of paid entries to a new session.

    Every entry must be paid and still waiting or selected; otherwise nothing
    is written and the offending player names are reported. Allocation of the
    session number, the snapshot, the entry flips and the status change are a
    single transaction.
    """
    settings = await sessions_repository.get_settings_for_streamer(db, streamer_id=streamer_id)
    if settings is None:
        raise NotFoundError("Mabar settings not found")

    entry_ids = list(dict.fromkeys(request.entry_ids))
    if len(entry_ids) > config.PARTY_SIZE:
        raise ValidationError(f"A session holds at most {config.PARTY_SIZE} players")
    if len(entry_ids) < (settings.min_players_to_start or 1):
        raise ValidationError(f"At least {settings.min_players_to_start} players are needed to start")

    entries = await sessions_repository.get_entries(db, entry_ids=entry_ids, streamer_id=streamer_id)
    missing = set(entry_ids) - {e.id for e in entries}
    if missing:
        raise ValidationError(f"Unknown queue entries: {sorted(missing)}")

    unpaid = [e.player_name for e in entries if e.payment_status != "completed"]
    unavailable = [
        e.player_name
        for e in entries
        if e.payment_status == "completed" and e.entry_status not in STARTABLE_ENTRY_STATUSES
    ]
    if unpaid or unavailable:
        parts = []
        if unpaid:
            parts.append("not paid: " + ", ".join(unpaid))
        if unavailable:
            parts.append("not available: " + ", ".join(unavailable))
        raise SessionValidationError(
            "Cannot start session, " + "; ".join(parts), player_names=unpaid + unavailable
        )

    now = now or datetime.utcnow()
    namespace_id = settings.id
    game_type = settings.game_type
    try:
        session_number = await allocate_session_number(db, streamer_id)
        session = GameSession(
            namespace_id=namespace_id,
            streamer_id=streamer_id,
            session_number=session_number,
            session_status="preparing",
            game_type=game_type,
            total_revenue=sum(e.amount or 0 for e in entries),
            notes=request.notes,
            players=[sessions_repository.build_snapshot(e) for e in entries],
        )
        db.add(session)
        await db.flush()

        for entry in entries:
            ok = await sessions_repository.transition_entry(
                db,
                entry_id=entry.id,
                from_statuses=STARTABLE_ENTRY_STATUSES,
                to_status="playing",
                require_paid=True,
            )
            if not ok:
                raise SessionValidationError(
                    f"Cannot start session, {entry.player_name} was taken by another action",
                    player_names=[entry.player_name],
                )

        if request.start_immediately:
            session.session_status = "in_progress"
            session.started_at = now
        session_id = session.id
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "SESSION_STARTED | streamer=%s | session=%s | number=%s | players=%s | revenue=%s | status=%s",
        streamer_id, session_id, session_number, len(entries), session.total_revenue, session.session_status,
    )
    session = await _load_session(db, session_id, streamer_id)
    entries = await sessions_repository.get_entries(db, entry_ids=entry_ids, streamer_id=streamer_id)
    await publish_rows(feed, "INSERT", session)
    await publish_rows(feed, "UPDATE", *entries)
    return SessionResponse.model_validate(session)


async def begin_session(db, *, session_id: int, streamer_id: str, feed, now: Optional[datetime] = None):
    """preparing -> in_progress"""
    await _load_session(db, session_id, streamer_id)
    now = now or datetime.utcnow()
    ok = await sessions_repository.transition_session(
        db,
        session_id=session_id,
        from_statuses=("preparing",),
        session_status="in_progress",
        started_at=now,
    )
    if not ok:
        await db.rollback()
        raise InvalidStateError("Only preparing sessions can be started")
    await db.commit()

    session = await _load_session(db, session_id, streamer_id)
    await publish_rows(feed, "UPDATE", session)
    return SessionResponse.model_validate(session)


async def finalize_session_entries(db, *, session_id: int, entry_ids: List[int]) -> List[int]:
    """
    Flip each participant still `playing` to `completed`, one transaction per
    entry. Returns the ids that could not be finalized.
    """
    pending = []
    for entry_id in entry_ids:
        try:
            changed = await sessions_repository.transition_entry(
                db, entry_id=entry_id, from_statuses=("playing",), to_status="completed"
            )
            await db.commit()
            if not changed:
                logger.debug("Entry %s of session %s was not playing", entry_id, session_id)
        except Exception as e:
            await db.rollback()
            pending.append(entry_id)
            logger.error(
                "ENTRY_FINALIZE_FAILED | session=%s | entry=%s | %s: %s",
                session_id, entry_id, type(e).__name__, e,
            )
    return pending


async def end_session(db, *, session_id: int, streamer_id: str, request, feed, now: Optional[datetime] = None):
    session = await _load_session(db, session_id, streamer_id)
    if session.session_status != "in_progress":
        raise InvalidStateError(f"Only in-progress sessions can be ended (is {session.session_status})")

    players = list(session.players)
    entry_ids = [p.queue_entry_id for p in players]
    mvp_game_id = None
    if request.mvp_entry_id is not None:
        mvp = next((p for p in players if p.queue_entry_id == request.mvp_entry_id), None)
        if mvp is None:
            raise ValidationError("MVP must be one of the session's players")
        mvp_game_id = mvp.game_id

    now = now or datetime.utcnow()
    duration = duration_in_minutes(session.started_at or now, now)
    notes = session.notes
    if request.notes:
        notes = f"{notes}\n{request.notes}" if notes else request.notes

    try:
        ok = await sessions_repository.transition_session(
            db,
            session_id=session_id,
            from_statuses=("in_progress",),
            session_status="completed",
            ended_at=now,
            duration_minutes=duration,
            game_result=request.game_result,
            mvp_entry_id=request.mvp_entry_id,
            notes=notes,
        )
        if not ok:
            raise InvalidStateError("Session was ended or cancelled concurrently")

        if request.mvp_entry_id is not None:
            await sessions_repository.mark_mvp(db, session_id=session_id, entry_id=request.mvp_entry_id)

        await record_game_result(
            db,
            streamer_id,
            [(p.game_id, p.player_name) for p in players],
            mvp_game_id,
        )
        await record_session_participation(db, streamer_id, [p.game_id for p in players], mvp_game_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "SESSION_ENDED | streamer=%s | session=%s | duration=%s | result=%s | mvp_entry=%s",
        streamer_id, session_id, duration, request.game_result, request.mvp_entry_id,
    )

    # The session is final from here; entry bookkeeping is retried separately
    pending = await finalize_session_entries(db, session_id=session_id, entry_ids=entry_ids)

    session = await _load_session(db, session_id, streamer_id)
    entries = await sessions_repository.get_entries(db, entry_ids=entry_ids, streamer_id=streamer_id)
    await publish_rows(feed, "UPDATE", session, *entries)
    return EndSessionResponse(session=SessionResponse.model_validate(session), pending_entry_ids=pending)


async def retry_finalize_entries(db, *, session_id: int, streamer_id: str, feed):
    session = await _load_session(db, session_id, streamer_id)
    if session.session_status != "completed":
        raise InvalidStateError("Only completed sessions have entries to finalize")
    entry_ids = [p.queue_entry_id for p in session.players]
    pending = await finalize_session_entries(db, session_id=session_id, entry_ids=entry_ids)

    entries = await sessions_repository.get_entries(db, entry_ids=entry_ids, streamer_id=streamer_id)
    await publish_rows(feed, "UPDATE", *entries)
    return EndSessionResponse(session=SessionResponse.model_validate(session), pending_entry_ids=pending)


async def cancel_session(db, *, session_id: int, streamer_id: str, feed, now: Optional[datetime] = None):
    session = await _load_session(db, session_id, streamer_id)
    current_status = session.session_status
    entry_ids = [p.queue_entry_id for p in session.players]
    now = now or datetime.utcnow()
    try:
        ok = await sessions_repository.transition_session(
            db,
            session_id=session_id,
            from_statuses=("preparing", "in_progress"),
            session_status="cancelled",
            ended_at=now,
        )
        if not ok:
            raise InvalidStateError(f"Cannot cancel a session that is {current_status}")
        for entry_id in entry_ids:
            await sessions_repository.transition_entry(
                db, entry_id=entry_id, from_statuses=("playing",), to_status="waiting"
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("SESSION_CANCELLED | streamer=%s | session=%s", streamer_id, session_id)
    session = await _load_session(db, session_id, streamer_id)
    entries = await sessions_repository.get_entries(db, entry_ids=entry_ids, streamer_id=streamer_id)
    await publish_rows(feed, "UPDATE", session, *entries)
    return SessionResponse.model_validate(session)


async def append_notes(db, *, session_id: int, streamer_id: str, notes: str, feed):
    """Notes are the only thing that may change on a completed session, and only by appending."""
    session = await _load_session(db, session_id, streamer_id)
    session.notes = f"{session.notes}\n{notes}" if session.notes else notes
    await db.commit()
    session = await _load_session(db, session_id, streamer_id)
    await publish_rows(feed, "UPDATE", session)
    return SessionResponse.model_validate(session)


async def get_session(db, *, session_id: int, streamer_id: str):
    return SessionResponse.model_validate(await _load_session(db, session_id, streamer_id))


async def list_sessions(db, *, streamer_id: str, status, limit: int, offset: int):
    sessions, total = await sessions_repository.list_sessions(
        db, streamer_id=streamer_id, status=status, limit=limit, offset=offset
    )
    return SessionListResponse(
        sessions=[SessionResponse.model_validate(s) for s in sessions], total=total
    )
