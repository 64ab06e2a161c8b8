"""
MVP reward ledger: earned/pending arithmetic, claims and fulfilment.
"""

import pytest

from app.models.donor import MvpRecord, RewardClaim
from app.routers.donors.service import claim_reward, fulfill_claim, list_mvp_records
from app.services.mvp_service import pending_rewards, record_game_result, rewards_earned
from core.errors import InvalidStateError, NotFoundError
from factories import STREAMER_ID, seed_settings


def test_reward_arithmetic():
    assert rewards_earned(7, 3) == 2
    assert pending_rewards(7, 3, 1) == 1
    assert pending_rewards(7, 3, 5) == 0
    assert rewards_earned(2, 3) == 0
    assert rewards_earned(5, 0) == 0


async def seed_mvp(session, *, wins, claims=0, identifier="GID1"):
    record = MvpRecord(
        streamer_id=STREAMER_ID,
        player_identifier=identifier,
        player_name="Budi",
        total_mvp_wins=wins,
        total_games_played=wins + 2,
    )
    session.add(record)
    await session.commit()
    for _ in range(claims):
        session.add(RewardClaim(mvp_record_id=record.id, reward_description="Skin"))
    await session.commit()
    return record


@pytest.mark.asyncio
async def test_listing_reports_pending_rewards(async_session_maker):
    async with async_session_maker() as session:
        await seed_settings(session, mvp_reward_enabled=True, mvp_win_count=3)
        await seed_mvp(session, wins=7, claims=1)

        listing = await list_mvp_records(session, streamer_id=STREAMER_ID)

    assert listing.reward_enabled is True
    assert listing.win_threshold == 3
    record = listing.records[0]
    assert record.rewards_earned == 2
    assert record.rewards_claimed == 1
    assert record.pending_rewards == 1


@pytest.mark.asyncio
async def test_claim_until_nothing_is_pending(async_session_maker, feed):
    async with async_session_maker() as session:
        await seed_settings(
            session, mvp_reward_enabled=True, mvp_win_count=3, mvp_reward_description="Free skin"
        )
        record = await seed_mvp(session, wins=7, claims=1)

        claim = await claim_reward(session, record_id=record.id, streamer_id=STREAMER_ID, feed=feed)
        assert claim.reward_type == "mvp_reward"
        assert claim.reward_description == "Free skin"
        assert claim.fulfilled is False

        with pytest.raises(InvalidStateError):
            await claim_reward(session, record_id=record.id, streamer_id=STREAMER_ID, feed=feed)

    assert feed.tables() == ["mvp_reward_claims"]


@pytest.mark.asyncio
async def test_claims_need_the_reward_rule(async_session_maker, feed):
    async with async_session_maker() as session:
        await seed_settings(session, mvp_reward_enabled=False)
        record = await seed_mvp(session, wins=9)

        with pytest.raises(InvalidStateError):
            await claim_reward(session, record_id=record.id, streamer_id=STREAMER_ID, feed=feed)


@pytest.mark.asyncio
async def test_claims_are_scoped_to_the_streamer(async_session_maker, feed):
    async with async_session_maker() as session:
        await seed_settings(session, streamer_id="other", mvp_reward_enabled=True)
        record = await seed_mvp(session, wins=9)

        with pytest.raises(NotFoundError):
            await claim_reward(session, record_id=record.id, streamer_id="other", feed=feed)


@pytest.mark.asyncio
async def test_fulfil_only_once(async_session_maker, feed):
    async with async_session_maker() as session:
        await seed_settings(session, mvp_reward_enabled=True)
        record = await seed_mvp(session, wins=3)
        claim = await claim_reward(session, record_id=record.id, streamer_id=STREAMER_ID, feed=feed)

        fulfilled = await fulfill_claim(session, claim_id=claim.id, streamer_id=STREAMER_ID, feed=feed)
        assert fulfilled.fulfilled is True
        assert fulfilled.fulfilled_at is not None

        with pytest.raises(InvalidStateError):
            await fulfill_claim(session, claim_id=claim.id, streamer_id=STREAMER_ID, feed=feed)

    assert [(e.type, e.table) for e in feed.events] == [
        ("INSERT", "mvp_reward_claims"),
        ("UPDATE", "mvp_reward_claims"),
    ]
    assert {e.streamer_id for e in feed.events} == {STREAMER_ID}
    assert feed.events[-1].record["fulfilled"] is True
    assert feed.events[-1].record["mvp_record_id"] == record.id


@pytest.mark.asyncio
async def test_game_results_accumulate(async_session_maker):
    async with async_session_maker() as session:
        participants = [("GID1", "Budi"), ("GID2", "Siti")]
        for _ in range(3):
            await record_game_result(session, STREAMER_ID, participants, mvp_identifier="GID1")
            await session.commit()
        await record_game_result(session, STREAMER_ID, participants, mvp_identifier=None)
        await session.commit()

        listing = await list_mvp_records(session, streamer_id=STREAMER_ID)

    by_player = {r.player_identifier: r for r in listing.records}
    assert by_player["GID1"].total_mvp_wins == 3
    assert by_player["GID1"].total_games_played == 4
    assert by_player["GID2"].total_mvp_wins == 0
    assert by_player["GID2"].total_games_played == 4
    # No settings row: the default threshold of 3 applies
    assert by_player["GID1"].rewards_earned == 1
    assert listing.reward_enabled is False
