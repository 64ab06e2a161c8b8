"""
Game sessions and the participant snapshot taken when a party is started.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db import Base


class GameSession(Base):
    __tablename__ = "game_sessions"
    __table_args__ = (
        UniqueConstraint("streamer_id", "session_number", name="uq_game_sessions_streamer_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    namespace_id = Column(Integer, ForeignKey("mabar_settings.id"), nullable=False)
    streamer_id = Column(String, nullable=False, index=True)
    session_number = Column(Integer, nullable=False)
    session_status = Column(String, nullable=False, default="preparing")
    game_type = Column(String, nullable=True)
    game_result = Column(String, nullable=True)  # win, lose, draw
    mvp_entry_id = Column(Integer, ForeignKey("queue_entries.id"), nullable=True)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    total_revenue = Column(BigInteger, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    players = relationship(
        "SessionPlayer",
        back_populates="session",
        order_by="SessionPlayer.id",
        lazy="selectin",
    )


class SessionPlayer(Base):
    """Copy of a queue entry at selection time. Never follows later entry edits."""

    __tablename__ = "session_players"
    __table_args__ = (
        UniqueConstraint("session_id", "queue_entry_id", name="uq_session_players_entry"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("game_sessions.id"), nullable=False, index=True)
    queue_entry_id = Column(Integer, ForeignKey("queue_entries.id"), nullable=False)
    player_name = Column(String, nullable=False)
    game_id = Column(String, nullable=False)
    game_nickname = Column(String, nullable=True)
    role = Column(String, nullable=True)
    amount_paid = Column(BigInteger, nullable=False, default=0)
    is_mvp = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("GameSession", back_populates="players")
