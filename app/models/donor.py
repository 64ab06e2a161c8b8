"""
Per-streamer player aggregates: donor totals and the MVP reward ledger.
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


class DonorAggregate(Base):
    __tablename__ = "donor_customers"
    __table_args__ = (
        UniqueConstraint("streamer_id", "game_id", name="uq_donor_customers_streamer_game"),
    )

    id = Column(Integer, primary_key=True, index=True)
    streamer_id = Column(String, nullable=False, index=True)
    game_id = Column(String, nullable=False)
    player_name = Column(String, nullable=False)
    game_nickname = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    total_donations = Column(Integer, nullable=False, default=0)
    total_amount_spent = Column(BigInteger, nullable=False, default=0)
    total_games_played = Column(Integer, nullable=False, default=0)
    total_mvp_wins = Column(Integer, nullable=False, default=0)
    favorite_role = Column(String, nullable=True)
    first_donation_at = Column(DateTime, nullable=True)
    last_donation_at = Column(DateTime, nullable=True)
    customer_tier = Column(String, nullable=False, default="bronze")
    # Operator-only moderation
    is_blocked = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class MvpRecord(Base):
    __tablename__ = "mvp_records"
    __table_args__ = (
        UniqueConstraint("streamer_id", "player_identifier", name="uq_mvp_records_streamer_player"),
    )

    id = Column(Integer, primary_key=True, index=True)
    streamer_id = Column(String, nullable=False, index=True)
    player_identifier = Column(String, nullable=False)  # external game id
    player_name = Column(String, nullable=False)
    total_mvp_wins = Column(Integer, nullable=False, default=0)
    total_games_played = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    claims = relationship(
        "RewardClaim",
        back_populates="mvp_record",
        order_by="RewardClaim.id",
        lazy="selectin",
    )


class RewardClaim(Base):
    __tablename__ = "mvp_reward_claims"

    id = Column(Integer, primary_key=True, index=True)
    mvp_record_id = Column(Integer, ForeignKey("mvp_records.id"), nullable=False, index=True)
    reward_type = Column(String, nullable=False, default="mvp_reward")
    reward_description = Column(Text, nullable=True)
    claimed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    fulfilled = Column(Boolean, nullable=False, default=False)
    fulfilled_at = Column(DateTime, nullable=True)

    mvp_record = relationship("MvpRecord", back_populates="claims")
