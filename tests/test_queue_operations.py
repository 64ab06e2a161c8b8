"""
Operator queue actions and namespace settings.
"""

import pytest

from app.routers.queue.schemas import SettingsUpsertRequest
from app.routers.queue.service import (
    cancel_entry,
    deselect_entry,
    get_public_queue,
    get_settings,
    list_queue,
    mark_no_show,
    select_entry,
    upsert_settings,
)
from core.errors import InvalidStateError, NotFoundError, ValidationError
from factories import STREAMER_ID, seed_entry, seed_settings


@pytest.mark.asyncio
async def test_upsert_settings_creates_then_updates(async_session_maker):
    async with async_session_maker() as session:
        created = await upsert_settings(
            session,
            streamer_id=STREAMER_ID,
            request=SettingsUpsertRequest(
                price_per_slot=50000,
                roles=[{"id": "tank", "name": "Tank"}],
                custom_fields=[{"id": "rank", "label": "Rank", "type": "select", "options": ["Epic"]}],
            ),
        )
        updated = await upsert_settings(
            session,
            streamer_id=STREAMER_ID,
            request=SettingsUpsertRequest(price_per_slot=75000, is_active=False),
        )

        assert created.id == updated.id
        assert created.roles[0].id == "tank"
        assert updated.price_per_slot == 75000
        assert updated.roles == []
        assert updated.active_entries == 0

        with pytest.raises(NotFoundError):
            await get_settings(session, streamer_id=STREAMER_ID, public=True)


def test_settings_reject_duplicate_role_ids():
    with pytest.raises(ValueError):
        SettingsUpsertRequest(
            price_per_slot=50000,
            roles=[{"id": "tank", "name": "Tank"}, {"id": "tank", "name": "Tank 2"}],
        )


@pytest.mark.asyncio
async def test_select_and_deselect(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry = await seed_entry(session, settings, position=1)

        selected = await select_entry(session, entry_id=entry.id, streamer_id=STREAMER_ID, feed=feed)
        assert selected.entry.entry_status == "selected"

        with pytest.raises(InvalidStateError):
            await select_entry(session, entry_id=entry.id, streamer_id=STREAMER_ID, feed=feed)

        waiting = await deselect_entry(session, entry_id=entry.id, streamer_id=STREAMER_ID, feed=feed)
        assert waiting.entry.entry_status == "waiting"

    assert feed.tables() == ["queue_entries", "queue_entries"]


@pytest.mark.asyncio
async def test_unpaid_entries_cannot_be_selected(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        entry = await seed_entry(session, settings, position=1, payment_status="pending")

        with pytest.raises(ValidationError):
            await select_entry(session, entry_id=entry.id, streamer_id=STREAMER_ID, feed=feed)


@pytest.mark.asyncio
async def test_selection_is_capped_at_party_size(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        for position in range(1, 5):
            await seed_entry(session, settings, position=position, entry_status="selected")
        fifth = await seed_entry(session, settings, position=5)

        with pytest.raises(ValidationError):
            await select_entry(session, entry_id=fifth.id, streamer_id=STREAMER_ID, feed=feed)


@pytest.mark.asyncio
async def test_cancel_and_no_show_are_soft(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        first = await seed_entry(session, settings, position=1)
        second = await seed_entry(session, settings, position=2)

        cancelled = await cancel_entry(session, entry_id=first.id, streamer_id=STREAMER_ID, feed=feed)
        no_show = await mark_no_show(session, entry_id=second.id, streamer_id=STREAMER_ID, feed=feed)

        assert cancelled.entry.entry_status == "cancelled"
        assert cancelled.entry.queue_position == 1
        assert no_show.entry.entry_status == "no_show"

        with pytest.raises(InvalidStateError):
            await cancel_entry(session, entry_id=first.id, streamer_id=STREAMER_ID, feed=feed)

        listing = await list_queue(
            session, streamer_id=STREAMER_ID, entry_status=None, payment_status=None, limit=100, offset=0
        )
        assert listing.total == 2


@pytest.mark.asyncio
async def test_entries_of_other_streamers_are_invisible(async_session_maker, feed):
    async with async_session_maker() as session:
        settings = await seed_settings(session, streamer_id="other")
        entry = await seed_entry(session, settings, position=1)

        with pytest.raises(NotFoundError):
            await select_entry(session, entry_id=entry.id, streamer_id=STREAMER_ID, feed=feed)


@pytest.mark.asyncio
async def test_public_queue_shows_paid_active_entries(async_session_maker):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        await seed_entry(session, settings, position=1, player_name="Paid")
        await seed_entry(session, settings, position=2, player_name="Pending", payment_status="pending")
        await seed_entry(session, settings, position=3, player_name="Gone", entry_status="cancelled")

        public = await get_public_queue(session, streamer_id=STREAMER_ID)

    assert [e.player_name for e in public.entries] == ["Paid"]
