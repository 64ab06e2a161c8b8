"""
Charges whose queue entry failed to save: recorded, then reconciled by order id.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.models.donor import DonorAggregate
from app.models.queue import Donation, OrphanPayment, QueueEntry
from app.routers.payments import service as payments_service
from app.routers.payments.schemas import CreatePaymentRequest
from app.routers.payments.service import create_payment, get_payment_status, process_midtrans_webhook
from factories import STREAMER_ID, seed_entry, seed_settings, signed_notification
from workers.status_poller import find_pending_orders, run_status_poll


def build_request(namespace_id):
    return CreatePaymentRequest(
        namespace_id=namespace_id,
        player_name=" Budi ",
        game_id="12345678",
        game_nickname="budiML",
        selected_role=None,
        amount=50000,
        payment_method="qris",
        email="budi@example.com",
        phone="0812000111",
    )


@pytest.fixture
def broken_allocation(monkeypatch):
    async def fail(db, namespace_id):
        raise RuntimeError("database went away")

    # Only registration breaks; recovery allocates through the allocator itself
    monkeypatch.setattr(payments_service, "allocate_queue_position", fail)


async def register_orphan(session_maker, gateway, feed):
    async with session_maker() as session:
        settings = await seed_settings(session)
        response = await create_payment(
            session, request=build_request(settings.id), gateway=gateway, feed=feed
        )
    assert response.queue_entry_id is None
    return response.order_id


async def load_orphan(session, order_id):
    result = await session.execute(
        select(OrphanPayment)
        .where(OrphanPayment.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def load_entry(session, order_id):
    result = await session.execute(
        select(QueueEntry)
        .where(QueueEntry.payment_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_failed_insert_records_the_charge(async_session_maker, gateway, feed, broken_allocation):
    order_id = await register_orphan(async_session_maker, gateway, feed)

    async with async_session_maker() as session:
        orphan = await load_orphan(session, order_id)
        assert orphan.streamer_id == STREAMER_ID
        assert orphan.amount == 50000
        assert orphan.payment_method == "qris"
        assert orphan.payment_status == "pending"
        assert orphan.queue_entry_id is None
        assert orphan.registration["player_name"] == "Budi"
        assert orphan.registration["game_id"] == "12345678"
        assert orphan.custom_data["gateway_order_id"] == order_id
        assert "database went away" in orphan.error
        assert await load_entry(session, order_id) is None


@pytest.mark.asyncio
async def test_poll_recreates_a_paid_orphan(async_session_maker, gateway, feed, broken_allocation):
    async with async_session_maker() as session:
        settings = await seed_settings(session)
        await seed_entry(session, settings, position=1, order_id="EARLIER", payment_status="completed")
        response = await create_payment(
            session, request=build_request(settings.id), gateway=gateway, feed=feed
        )
    order_id = response.order_id
    gateway.statuses[order_id] = {
        "transaction_status": "settlement",
        "gross_amount": "50000.00",
        "status_code": "200",
        "payment_type": "qris",
    }
    later = datetime.utcnow() + timedelta(minutes=10)

    summary = await run_status_poll(
        gateway=gateway, feed=feed, session_factory=async_session_maker, now=later
    )

    assert gateway.status_calls == [order_id]
    assert summary["checked"] == 1
    assert summary["updated"] == 1
    async with async_session_maker() as session:
        entry = await load_entry(session, order_id)
        assert entry is not None
        assert entry.payment_status == "completed"
        assert entry.entry_status == "waiting"
        assert entry.queue_position == 2
        assert entry.player_name == "Budi"
        assert entry.phone == "0812000111"
        assert entry.paid_at is not None

        orphan = await load_orphan(session, order_id)
        assert orphan.queue_entry_id == entry.id

        donations = await session.execute(
            select(func.count(Donation.id)).where(Donation.payment_id == order_id)
        )
        assert donations.scalar() == 1
        donor = (
            await session.execute(select(DonorAggregate).where(DonorAggregate.game_id == "12345678"))
        ).scalar_one()
        assert donor.total_amount_spent == 50000

        # Resolved orphans are not polled again
        assert await find_pending_orders(session, now=later, limit=10) == []

    assert ("INSERT", "queue_entries") in [(e.type, e.table) for e in feed.events]


@pytest.mark.asyncio
async def test_settlement_webhook_recovers_the_entry(async_session_maker, gateway, feed, broken_allocation):
    order_id = await register_orphan(async_session_maker, gateway, feed)

    async with async_session_maker() as session:
        ack = await process_midtrans_webhook(
            session, payload=signed_notification(order_id, "settlement"), feed=feed
        )
        replay = await process_midtrans_webhook(
            session, payload=signed_notification(order_id, "settlement"), feed=feed
        )
        entry = await load_entry(session, order_id)

    assert ack.status == "processed"
    assert replay.status == "no_change"
    assert entry.payment_status == "completed"
    assert entry.queue_position == 1


@pytest.mark.asyncio
async def test_expired_orphan_is_closed_without_an_entry(async_session_maker, gateway, feed, broken_allocation):
    order_id = await register_orphan(async_session_maker, gateway, feed)

    async with async_session_maker() as session:
        pending = await process_midtrans_webhook(
            session, payload=signed_notification(order_id, "pending", status_code="201"), feed=feed
        )
        expired = await process_midtrans_webhook(
            session, payload=signed_notification(order_id, "expire", status_code="407"), feed=feed
        )
        orphan = await load_orphan(session, order_id)
        entry = await load_entry(session, order_id)
        polled = await find_pending_orders(
            session, now=datetime.utcnow() + timedelta(minutes=10), limit=10
        )

    assert pending.status == "no_change"
    assert expired.status == "processed"
    assert orphan.payment_status == "failed"
    assert orphan.resolved_at is not None
    assert entry is None
    assert polled == []


@pytest.mark.asyncio
async def test_status_lookup_recovers_a_paid_orphan(async_session_maker, gateway, feed, broken_allocation):
    order_id = await register_orphan(async_session_maker, gateway, feed)
    gateway.statuses[order_id] = {"transaction_status": "settlement", "gross_amount": "50000.00"}

    async with async_session_maker() as session:
        status = await get_payment_status(session, order_id=order_id, gateway=gateway, feed=feed)

    assert status.source == "gateway"
    assert status.payment_status == "completed"
    assert status.queue_entry_id is not None
