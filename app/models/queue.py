"""
Queue entries, the donation ledger written when an entry is paid, and
charges whose entry could not be saved.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.db import Base

ACTIVE_ENTRY_STATUSES = ("waiting", "selected", "playing")


class QueueEntry(Base):
    __tablename__ = "queue_entries"
    __table_args__ = (
        UniqueConstraint("namespace_id", "queue_position", name="uq_queue_entries_namespace_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    namespace_id = Column(Integer, ForeignKey("mabar_settings.id"), nullable=False, index=True)
    streamer_id = Column(String, nullable=False, index=True)
    player_name = Column(String, nullable=False)
    game_id = Column(String, nullable=False, index=True)
    game_nickname = Column(String, nullable=True)
    selected_role = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String, nullable=False, default="IDR")
    payment_status = Column(String, nullable=False, default="pending", index=True)
    payment_id = Column(String, nullable=False, unique=True, index=True)  # gateway order id
    payment_method = Column(String, nullable=True)
    queue_position = Column(Integer, nullable=False)
    entry_status = Column(String, nullable=False, default="waiting", index=True)
    custom_data = Column(JSON, nullable=False, default=dict)  # EntryCustomData
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    paid_at = Column(DateTime, nullable=True)


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True)
    streamer_id = Column(String, nullable=False, index=True)
    donor_name = Column(String, nullable=False)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String, nullable=False, default="IDR")
    donation_type = Column(String, nullable=False, default="mabar")
    related_queue_entry_id = Column(Integer, ForeignKey("queue_entries.id"), nullable=True)
    payment_status = Column(String, nullable=False, default="completed")
    payment_id = Column(String, nullable=False, unique=True)  # one donation per order
    payment_method = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OrphanPayment(Base):
    """
    A charge the gateway accepted whose queue entry could not be saved.

    Kept until a gateway status resolves it: a paid order gets its entry
    re-created from `registration`, an expired or denied one is closed.
    """

    __tablename__ = "orphan_payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, nullable=False, unique=True, index=True)
    namespace_id = Column(Integer, ForeignKey("mabar_settings.id"), nullable=False, index=True)
    streamer_id = Column(String, nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String, nullable=False, default="IDR")
    payment_method = Column(String, nullable=True)
    registration = Column(JSON, nullable=False, default=dict)  # player profile as submitted
    custom_data = Column(JSON, nullable=False, default=dict)  # EntryCustomData
    payment_status = Column(String, nullable=False, default="pending", index=True)
    error = Column(Text, nullable=True)
    queue_entry_id = Column(Integer, ForeignKey("queue_entries.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
