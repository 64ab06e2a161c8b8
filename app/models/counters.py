"""
Sequence counters backing queue positions and session numbers.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, UniqueConstraint

from app.db import Base

QUEUE_POSITION_SCOPE = "queue_position"  # keyed by namespace id
SESSION_NUMBER_SCOPE = "session_number"  # keyed by streamer id


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint("scope", "scope_key", name="uq_sequence_counters_scope_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    scope = Column(String, nullable=False)
    scope_key = Column(String, nullable=False)
    last_value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
