"""Donor and MVP ledger repository layer."""

from sqlalchemy import desc, func, select

from app.models.donor import DonorAggregate, MvpRecord, RewardClaim
from app.models.settings import NamespaceSettings

DONOR_SORTS = {
    "amount": DonorAggregate.total_amount_spent,
    "last_donation": DonorAggregate.last_donation_at,
}


async def get_settings_for_streamer(db, *, streamer_id: str):
    result = await db.execute(
        select(NamespaceSettings).where(NamespaceSettings.streamer_id == streamer_id)
    )
    return result.scalar_one_or_none()


async def list_donors(db, *, streamer_id: str, tier=None, sort: str = "amount", limit: int = 50, offset: int = 0):
    stmt = select(DonorAggregate).where(DonorAggregate.streamer_id == streamer_id)
    count_stmt = select(func.count(DonorAggregate.id)).where(DonorAggregate.streamer_id == streamer_id)
    if tier:
        stmt = stmt.where(DonorAggregate.customer_tier == tier)
        count_stmt = count_stmt.where(DonorAggregate.customer_tier == tier)
    stmt = stmt.order_by(desc(DONOR_SORTS[sort]), DonorAggregate.id).limit(limit).offset(offset)
    stmt = stmt.execution_options(populate_existing=True)
    rows = (await db.execute(stmt)).scalars().all()
    total = (await db.execute(count_stmt)).scalar() or 0
    return rows, total


async def get_donor(db, *, donor_id: int, streamer_id: str):
    stmt = (
        select(DonorAggregate)
        .where(DonorAggregate.id == donor_id, DonorAggregate.streamer_id == streamer_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_mvp_records(db, *, streamer_id: str):
    stmt = (
        select(MvpRecord)
        .where(MvpRecord.streamer_id == streamer_id)
        .order_by(desc(MvpRecord.total_mvp_wins), MvpRecord.id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalars().all()


async def get_mvp_record_for_update(db, *, record_id: int, streamer_id: str):
    # Row lock serializes concurrent claims against the same record
    stmt = (
        select(MvpRecord)
        .where(MvpRecord.id == record_id, MvpRecord.streamer_id == streamer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def count_claims(db, *, record_id: int) -> int:
    stmt = select(func.count(RewardClaim.id)).where(RewardClaim.mvp_record_id == record_id)
    return (await db.execute(stmt)).scalar() or 0


async def get_claim(db, *, claim_id: int, streamer_id: str):
    stmt = (
        select(RewardClaim)
        .join(MvpRecord, RewardClaim.mvp_record_id == MvpRecord.id)
        .where(RewardClaim.id == claim_id, MvpRecord.streamer_id == streamer_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()
