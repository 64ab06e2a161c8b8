"""Game session schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class StartSessionRequest(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1, description="Queue entries to play (party size max)")
    start_immediately: bool = Field(
        True, description="False keeps the party in `preparing` until /start is called"
    )
    notes: Optional[str] = Field(None, max_length=2000)


class EndSessionRequest(BaseModel):
    game_result: Optional[Literal["win", "lose", "draw"]] = None
    mvp_entry_id: Optional[int] = Field(None, description="Queue entry id of the MVP")
    notes: Optional[str] = Field(None, max_length=2000)


class AppendNotesRequest(BaseModel):
    notes: str = Field(..., min_length=1, max_length=2000)


class SessionPlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    queue_entry_id: int
    player_name: str
    game_id: str
    game_nickname: Optional[str] = None
    role: Optional[str] = None
    amount_paid: int
    is_mvp: bool
    joined_at: datetime


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    streamer_id: str
    session_number: int
    session_status: str
    game_type: Optional[str] = None
    game_result: Optional[str] = None
    mvp_entry_id: Optional[int] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    total_revenue: int
    notes: Optional[str] = None
    players: List[SessionPlayerResponse] = Field(default_factory=list)


class EndSessionResponse(BaseModel):
    success: bool = True
    session: SessionResponse
    pending_entry_ids: List[int] = Field(
        default_factory=list, description="Entries still `playing`; retry via finalize-entries"
    )


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int
