"""
Namespace settings: one queue configuration per streamer.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)

from app.db import Base


class NamespaceSettings(Base):
    __tablename__ = "mabar_settings"

    id = Column(Integer, primary_key=True, index=True)
    streamer_id = Column(String, nullable=False, unique=True, index=True)
    game_type = Column(String, nullable=False, default="mobile_legends")
    price_per_slot = Column(BigInteger, nullable=False)  # IDR, no minor unit
    currency = Column(String, nullable=False, default="IDR")
    max_queue_size = Column(Integer, nullable=False, default=50)
    min_players_to_start = Column(Integer, nullable=False, default=1)
    roles = Column(JSON, nullable=False, default=list)  # [RoleConfig]
    custom_fields = Column(JSON, nullable=False, default=list)  # [CustomFieldConfig]
    mvp_reward_enabled = Column(Boolean, nullable=False, default=False)
    mvp_reward_description = Column(Text, nullable=True)
    mvp_win_count = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
