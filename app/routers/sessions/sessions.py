"""Game Sessions Router - start, end and cancel parties drawn from the queue."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_change_feed, get_current_streamer

from .schemas import (
    AppendNotesRequest,
    EndSessionRequest,
    EndSessionResponse,
    SessionListResponse,
    SessionResponse,
    StartSessionRequest,
)
from .service import (
    append_notes,
    begin_session,
    cancel_session,
    end_session,
    get_session,
    list_sessions,
    retry_finalize_entries,
    start_session,
)

router = APIRouter(prefix="/sessions", tags=["Sessions"])

SessionStatusFilter = Literal["preparing", "in_progress", "completed", "cancelled"]


@router.post("", response_model=SessionResponse)
async def create_session(
    request: StartSessionRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await start_session(db, streamer_id=streamer_id, request=request, feed=feed)


@router.get("", response_model=SessionListResponse)
async def sessions_index(
    status: Optional[SessionStatusFilter] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_sessions(db, streamer_id=streamer_id, status=status, limit=limit, offset=offset)


@router.get("/{session_id}", response_model=SessionResponse)
async def session_detail(
    session_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_session(db, session_id=session_id, streamer_id=streamer_id)


@router.post("/{session_id}/start", response_model=SessionResponse)
async def start(
    session_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await begin_session(db, session_id=session_id, streamer_id=streamer_id, feed=feed)


@router.post("/{session_id}/end", response_model=EndSessionResponse)
async def end(
    session_id: int,
    request: EndSessionRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await end_session(
        db, session_id=session_id, streamer_id=streamer_id, request=request, feed=feed
    )


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel(
    session_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await cancel_session(db, session_id=session_id, streamer_id=streamer_id, feed=feed)


@router.post("/{session_id}/finalize-entries", response_model=EndSessionResponse)
async def finalize_entries(
    session_id: int,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await retry_finalize_entries(db, session_id=session_id, streamer_id=streamer_id, feed=feed)


@router.post("/{session_id}/notes", response_model=SessionResponse)
async def add_notes(
    session_id: int,
    request: AppendNotesRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
    feed=Depends(get_change_feed),
):
    return await append_notes(
        db, session_id=session_id, streamer_id=streamer_id, notes=request.notes, feed=feed
    )
