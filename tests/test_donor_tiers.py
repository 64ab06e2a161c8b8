"""
Donor aggregates: lifetime totals, tier recomputation and session participation.
"""

import pytest
from sqlalchemy import select

from app.models.donor import DonorAggregate
from app.services.donor_service import (
    apply_completed_payment,
    classify_tier,
    record_session_participation,
)
from factories import STREAMER_ID, seed_entry, seed_settings


@pytest.mark.parametrize(
    "amount,tier",
    [
        (0, "bronze"),
        (199_999, "bronze"),
        (200_000, "silver"),
        (499_999, "silver"),
        (500_000, "gold"),
        (1_000_000, "platinum"),
        (2_000_000, "diamond"),
        (9_000_000, "diamond"),
    ],
)
def test_classify_tier(amount, tier):
    assert classify_tier(amount) == tier


async def get_donor(session, game_id):
    result = await session.execute(
        select(DonorAggregate)
        .where(DonorAggregate.streamer_id == STREAMER_ID, DonorAggregate.game_id == game_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_crossing_a_threshold_promotes_the_donor(async_session_maker):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        session.add(
            DonorAggregate(
                streamer_id=STREAMER_ID,
                game_id="GID1",
                player_name="Player 1",
                total_donations=5,
                total_amount_spent=480_000,
                customer_tier="silver",
            )
        )
        await session.commit()
        entry = await seed_entry(session, settings, position=1, game_id="GID1")

        donor = await apply_completed_payment(session, entry, 50_000)
        await session.commit()

        donor = await get_donor(session, "GID1")
        assert donor.total_amount_spent == 530_000
        assert donor.total_donations == 6
        assert donor.customer_tier == "gold"


@pytest.mark.asyncio
async def test_totals_do_not_depend_on_payment_order(async_session_maker):
    amounts = [50_000, 120_000, 35_000]
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        for position, (game_id, ordered) in enumerate(
            [("FWD", amounts), ("REV", list(reversed(amounts)))], start=1
        ):
            for i, amount in enumerate(ordered):
                entry = await seed_entry(
                    session,
                    settings,
                    position=position * 10 + i,
                    order_id=f"MABAR-{game_id}-{i}",
                    game_id=game_id,
                    amount=amount,
                )
                await apply_completed_payment(session, entry, amount)
                await session.commit()

        forward = await get_donor(session, "FWD")
        backward = await get_donor(session, "REV")

    assert forward.total_amount_spent == backward.total_amount_spent == 205_000
    assert forward.total_donations == backward.total_donations == 3
    assert forward.customer_tier == backward.customer_tier == "silver"


@pytest.mark.asyncio
async def test_moderation_fields_survive_payments(async_session_maker):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        session.add(
            DonorAggregate(
                streamer_id=STREAMER_ID,
                game_id="GID1",
                player_name="Player 1",
                total_donations=1,
                total_amount_spent=50_000,
                is_blocked=True,
                notes="chargeback last month",
            )
        )
        await session.commit()
        entry = await seed_entry(session, settings, position=1, game_id="GID1")

        await apply_completed_payment(session, entry, 50_000)
        await session.commit()

        donor = await get_donor(session, "GID1")
        assert donor.is_blocked is True
        assert donor.notes == "chargeback last month"


@pytest.mark.asyncio
async def test_session_participation_touches_known_donors_only(async_session_maker):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry = await seed_entry(session, settings, position=1, game_id="GID1")
        await apply_completed_payment(session, entry, 50_000)
        await session.commit()

        touched = await record_session_participation(
            session, STREAMER_ID, ["GID1", "UNKNOWN"], mvp_game_id="GID1"
        )
        await session.commit()

        donor = await get_donor(session, "GID1")
        assert touched == 1
        assert donor.total_games_played == 1
        assert donor.total_mvp_wins == 1
