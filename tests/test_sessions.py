"""
Game sessions: start validation, snapshots, ending with MVP bookkeeping, cancellation.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.models.donor import DonorAggregate, MvpRecord
from app.models.queue import QueueEntry
from app.models.session import SessionPlayer
from app.routers.sessions import repository as sessions_repository
from app.routers.sessions import service as sessions_service
from app.routers.sessions.schemas import EndSessionRequest, StartSessionRequest
from app.routers.sessions.service import (
    cancel_session,
    duration_in_minutes,
    end_session,
    retry_finalize_entries,
    start_session,
)
from core.errors import InvalidStateError, SessionValidationError, ValidationError
from factories import STREAMER_ID, seed_entry, seed_settings

STARTED_AT = datetime(2026, 10, 19, 20, 0, 0)


async def seed_party(session, settings, count=4, **kwargs):
    entries = []
    for position in range(1, count + 1):
        entries.append(await seed_entry(session, settings, position=position, **kwargs))
    return [e.id for e in entries]


async def entry_statuses(session, entry_ids):
    result = await session.execute(
        select(QueueEntry.id, QueueEntry.entry_status).where(QueueEntry.id.in_(entry_ids))
    )
    return dict(result.all())


def test_duration_rounds_half_up():
    assert duration_in_minutes(STARTED_AT, STARTED_AT + timedelta(minutes=12)) == 12
    assert duration_in_minutes(STARTED_AT, STARTED_AT + timedelta(minutes=12, seconds=30)) == 13
    assert duration_in_minutes(STARTED_AT, STARTED_AT + timedelta(minutes=12, seconds=29)) == 12
    assert duration_in_minutes(STARTED_AT, STARTED_AT) == 0


@pytest.mark.asyncio
async def test_full_party_session_lifecycle(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings)

        started = await start_session(
            session,
            streamer_id=STREAMER_ID,
            request=StartSessionRequest(entry_ids=entry_ids),
            feed=feed,
            now=STARTED_AT,
        )

        assert started.session_number == 1
        assert started.session_status == "in_progress"
        assert started.total_revenue == 200000
        assert [p.queue_entry_id for p in started.players] == entry_ids
        assert set((await entry_statuses(session, entry_ids)).values()) == {"playing"}

        ended = await end_session(
            session,
            session_id=started.id,
            streamer_id=STREAMER_ID,
            request=EndSessionRequest(game_result="win", mvp_entry_id=entry_ids[0]),
            feed=feed,
            now=STARTED_AT + timedelta(minutes=12),
        )

        assert ended.pending_entry_ids == []
        assert ended.session.session_status == "completed"
        assert ended.session.duration_minutes == 12
        assert ended.session.game_result == "win"
        assert ended.session.mvp_entry_id == entry_ids[0]
        mvp_flags = await session.execute(
            select(SessionPlayer.queue_entry_id, SessionPlayer.is_mvp).where(
                SessionPlayer.session_id == started.id
            )
        )
        assert dict(mvp_flags.all()) == {entry_ids[0]: True, **{i: False for i in entry_ids[1:]}}
        assert set((await entry_statuses(session, entry_ids)).values()) == {"completed"}

        mvp = (
            await session.execute(select(MvpRecord).where(MvpRecord.player_identifier == "GID1"))
        ).scalar_one()
        assert mvp.total_mvp_wins == 1
        assert mvp.total_games_played == 1
        others = (
            await session.execute(select(MvpRecord).where(MvpRecord.player_identifier != "GID1"))
        ).scalars().all()
        assert [r.total_mvp_wins for r in others] == [0, 0, 0]

    assert "game_sessions" in feed.tables()


@pytest.mark.asyncio
async def test_unpaid_entries_are_named(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        paid = await seed_entry(session, settings, position=1)
        unpaid = await seed_entry(
            session, settings, position=2, player_name="Siti", payment_status="pending"
        )

        with pytest.raises(SessionValidationError) as exc_info:
            await start_session(
                session,
                streamer_id=STREAMER_ID,
                request=StartSessionRequest(entry_ids=[paid.id, unpaid.id]),
                feed=feed,
            )

        assert exc_info.value.player_names == ["Siti"]
        assert "Siti" in exc_info.value.message
        assert await entry_statuses(session, [paid.id]) == {paid.id: "waiting"}
        assert await sessions_repository.list_sessions(session, streamer_id=STREAMER_ID) == ([], 0)

    assert feed.events == []


@pytest.mark.asyncio
async def test_entries_already_playing_are_rejected(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        busy = await seed_entry(session, settings, position=1, player_name="Andi", entry_status="playing")

        with pytest.raises(SessionValidationError) as exc_info:
            await start_session(
                session,
                streamer_id=STREAMER_ID,
                request=StartSessionRequest(entry_ids=[busy.id]),
                feed=feed,
            )

    assert exc_info.value.player_names == ["Andi"]


@pytest.mark.asyncio
async def test_party_size_is_enforced(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=5)

        with pytest.raises(ValidationError):
            await start_session(
                session,
                streamer_id=STREAMER_ID,
                request=StartSessionRequest(entry_ids=entry_ids),
                feed=feed,
            )


@pytest.mark.asyncio
async def test_lost_race_rolls_back_the_whole_start(async_session_maker, feed, monkeypatch):
    original = sessions_repository.transition_entry
    calls = []

    async def flaky_transition(db, **kwargs):
        calls.append(kwargs["entry_id"])
        if len(calls) == 2:
            return False
        return await original(db, **kwargs)

    monkeypatch.setattr(sessions_repository, "transition_entry", flaky_transition)

    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=2)

        with pytest.raises(SessionValidationError):
            await start_session(
                session,
                streamer_id=STREAMER_ID,
                request=StartSessionRequest(entry_ids=entry_ids),
                feed=feed,
            )

        assert set((await entry_statuses(session, entry_ids)).values()) == {"waiting"}
        assert await sessions_repository.list_sessions(session, streamer_id=STREAMER_ID) == ([], 0)


@pytest.mark.asyncio
async def test_session_numbers_increase_per_streamer(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        first = await seed_entry(session, settings, position=1)
        second = await seed_entry(session, settings, position=2)

        one = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=[first.id]), feed=feed
        )
        two = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=[second.id]), feed=feed
        )

    assert (one.session_number, two.session_number) == (1, 2)


@pytest.mark.asyncio
async def test_preparing_session_must_begin_before_ending(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=1)

        started = await start_session(
            session,
            streamer_id=STREAMER_ID,
            request=StartSessionRequest(entry_ids=entry_ids, start_immediately=False),
            feed=feed,
        )
        assert started.session_status == "preparing"
        assert started.started_at is None

        with pytest.raises(InvalidStateError):
            await end_session(
                session,
                session_id=started.id,
                streamer_id=STREAMER_ID,
                request=EndSessionRequest(),
                feed=feed,
            )

        begun = await sessions_service.begin_session(
            session, session_id=started.id, streamer_id=STREAMER_ID, feed=feed, now=STARTED_AT
        )
        assert begun.session_status == "in_progress"
        assert begun.started_at == STARTED_AT


@pytest.mark.asyncio
async def test_mvp_must_be_a_participant(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=2)
        outsider = await seed_entry(session, settings, position=9)

        started = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=entry_ids), feed=feed
        )

        with pytest.raises(ValidationError):
            await end_session(
                session,
                session_id=started.id,
                streamer_id=STREAMER_ID,
                request=EndSessionRequest(mvp_entry_id=outsider.id),
                feed=feed,
            )


@pytest.mark.asyncio
async def test_ending_twice_is_rejected(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=1)
        started = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=entry_ids), feed=feed
        )
        await end_session(
            session, session_id=started.id, streamer_id=STREAMER_ID, request=EndSessionRequest(), feed=feed
        )

        with pytest.raises(InvalidStateError):
            await end_session(
                session, session_id=started.id, streamer_id=STREAMER_ID, request=EndSessionRequest(), feed=feed
            )

        mvp = (await session.execute(select(MvpRecord))).scalar_one()
        assert mvp.total_games_played == 1


@pytest.mark.asyncio
async def test_failed_entry_finalization_can_be_retried(async_session_maker, feed, monkeypatch):
    original = sessions_repository.transition_entry
    state = {"fail": True}

    async def failing_finalize(db, **kwargs):
        if kwargs.get("to_status") == "completed" and state["fail"]:
            raise RuntimeError("connection reset")
        return await original(db, **kwargs)

    monkeypatch.setattr(sessions_repository, "transition_entry", failing_finalize)

    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=2)
        started = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=entry_ids), feed=feed
        )

        ended = await end_session(
            session, session_id=started.id, streamer_id=STREAMER_ID, request=EndSessionRequest(), feed=feed
        )
        assert ended.session.session_status == "completed"
        assert sorted(ended.pending_entry_ids) == sorted(entry_ids)

        state["fail"] = False
        retried = await retry_finalize_entries(
            session, session_id=started.id, streamer_id=STREAMER_ID, feed=feed
        )
        assert retried.pending_entry_ids == []
        assert set((await entry_statuses(session, entry_ids)).values()) == {"completed"}


@pytest.mark.asyncio
async def test_cancel_returns_players_to_the_queue(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry_ids = await seed_party(session, settings, count=2)
        started = await start_session(
            session, streamer_id=STREAMER_ID, request=StartSessionRequest(entry_ids=entry_ids), feed=feed
        )

        cancelled = await cancel_session(
            session, session_id=started.id, streamer_id=STREAMER_ID, feed=feed
        )

        assert cancelled.session_status == "cancelled"
        assert set((await entry_statuses(session, entry_ids)).values()) == {"waiting"}

        with pytest.raises(InvalidStateError):
            await cancel_session(session, session_id=started.id, streamer_id=STREAMER_ID, feed=feed)

        assert (await session.execute(select(MvpRecord))).scalars().all() == []
        assert (await session.execute(select(DonorAggregate))).scalars().all() == []
