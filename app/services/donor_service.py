"""
Donor Service - per-streamer donor aggregates, donation ledger and tiers
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.donor import DonorAggregate
from app.models.queue import Donation, QueueEntry

logger = logging.getLogger(__name__)

# Lifetime spend (IDR) -> tier, highest band first
TIER_THRESHOLDS = (
    (2_000_000, "diamond"),
    (1_000_000, "platinum"),
    (500_000, "gold"),
    (200_000, "silver"),
)
DEFAULT_TIER = "bronze"


def classify_tier(lifetime_amount: int) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if lifetime_amount >= threshold:
            return tier
    return DEFAULT_TIER


async def get_donor(db: AsyncSession, streamer_id: str, game_id: str) -> Optional[DonorAggregate]:
    stmt = select(DonorAggregate).where(
        DonorAggregate.streamer_id == streamer_id,
        DonorAggregate.game_id == game_id,
    )
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def record_donation(
    db: AsyncSession, entry: QueueEntry, amount: int, payment_type: Optional[str] = None
) -> Donation:
    """Add the donation row for a freshly completed entry (caller commits)."""
    existing = await db.execute(select(Donation).where(Donation.payment_id == entry.payment_id))
    donation = existing.scalar_one_or_none()
    if donation:
        logger.info("Donation for %s already recorded", entry.payment_id)
        return donation

    donation = Donation(
        streamer_id=entry.streamer_id,
        donor_name=entry.player_name,
        amount=amount,
        currency=entry.currency or "IDR",
        donation_type="mabar",
        related_queue_entry_id=entry.id,
        payment_status="completed",
        payment_id=entry.payment_id,
        payment_method=payment_type or entry.payment_method,
    )
    db.add(donation)
    await db.flush()
    return donation


async def apply_completed_payment(
    db: AsyncSession,
    entry: QueueEntry,
    amount: int,
    now: Optional[datetime] = None,
) -> DonorAggregate:
    """
    Roll one completed payment into the donor aggregate for (streamer, game id).

    Runs inside the reconciler's transaction. Counters move with a single SQL
    increment and the tier is recomputed from the resulting lifetime total.
    Moderation fields are left alone.
    """
    now = now or datetime.utcnow()
    donor = await get_donor(db, entry.streamer_id, entry.game_id)

    if donor is None:
        try:
            async with db.begin_nested():
                donor = DonorAggregate(
                    streamer_id=entry.streamer_id,
                    game_id=entry.game_id,
                    player_name=entry.player_name,
                    game_nickname=entry.game_nickname,
                    email=entry.email,
                    phone=entry.phone,
                    total_donations=1,
                    total_amount_spent=amount,
                    favorite_role=entry.selected_role,
                    first_donation_at=now,
                    last_donation_at=now,
                    customer_tier=classify_tier(amount),
                )
                db.add(donor)
            logger.info(
                "DONOR_CREATED | streamer=%s | game_id=%s | amount=%s | tier=%s",
                entry.streamer_id, entry.game_id, amount, donor.customer_tier,
            )
            return donor
        except IntegrityError:
            logger.info(
                "Donor %s/%s created concurrently, incrementing instead",
                entry.streamer_id, entry.game_id,
            )
            donor = await get_donor(db, entry.streamer_id, entry.game_id)

    values = dict(
        total_donations=DonorAggregate.total_donations + 1,
        total_amount_spent=DonorAggregate.total_amount_spent + amount,
        player_name=entry.player_name,
        last_donation_at=now,
        updated_at=now,
    )
    if entry.game_nickname:
        values["game_nickname"] = entry.game_nickname
    if entry.email:
        values["email"] = entry.email
    if entry.phone:
        values["phone"] = entry.phone
    if entry.selected_role:
        values["favorite_role"] = entry.selected_role

    await db.execute(
        update(DonorAggregate)
        .where(DonorAggregate.id == donor.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    donor = await get_donor(db, entry.streamer_id, entry.game_id)
    tier = classify_tier(donor.total_amount_spent)
    if tier != donor.customer_tier:
        logger.info(
            "DONOR_TIER_CHANGED | streamer=%s | game_id=%s | %s -> %s | lifetime=%s",
            donor.streamer_id, donor.game_id, donor.customer_tier, tier, donor.total_amount_spent,
        )
    await db.execute(
        update(DonorAggregate)
        .where(DonorAggregate.id == donor.id)
        .values(customer_tier=tier)
        .execution_options(synchronize_session=False)
    )
    donor.customer_tier = tier
    return donor


async def record_session_participation(
    db: AsyncSession,
    streamer_id: str,
    game_ids: Iterable[str],
    mvp_game_id: Optional[str] = None,
) -> int:
    """Bump games played (and MVP wins) on donors that exist. Returns rows touched."""
    touched = 0
    for game_id in game_ids:
        values = dict(total_games_played=DonorAggregate.total_games_played + 1)
        if mvp_game_id and game_id == mvp_game_id:
            values["total_mvp_wins"] = DonorAggregate.total_mvp_wins + 1
        result = await db.execute(
            update(DonorAggregate)
            .where(
                DonorAggregate.streamer_id == streamer_id,
                DonorAggregate.game_id == game_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        touched += result.rowcount or 0
    return touched
