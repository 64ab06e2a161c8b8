"""Donor and MVP ledger service layer."""

import logging
from datetime import datetime
from typing import Optional

from app.models.donor import RewardClaim
from app.services.change_feed import publish_rows
from app.services.mvp_service import pending_rewards, rewards_earned
from core.errors import InvalidStateError, NotFoundError, ValidationError

from . import repository as donors_repository
from .schemas import (
    DonorListResponse,
    DonorResponse,
    MvpListResponse,
    MvpRecordResponse,
    RewardClaimResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_WIN_THRESHOLD = 3


async def list_donors(db, *, streamer_id: str, tier, sort: str, limit: int, offset: int):
    rows, total = await donors_repository.list_donors(
        db, streamer_id=streamer_id, tier=tier, sort=sort, limit=limit, offset=offset
    )
    return DonorListResponse(donors=[DonorResponse.model_validate(r) for r in rows], total=total)


async def moderate_donor(db, *, donor_id: int, streamer_id: str, request, feed):
    donor = await donors_repository.get_donor(db, donor_id=donor_id, streamer_id=streamer_id)
    if donor is None:
        raise NotFoundError("Donor not found")
    if request.is_blocked is None and request.notes is None:
        raise ValidationError("Nothing to update")

    if request.is_blocked is not None:
        donor.is_blocked = request.is_blocked
    if request.notes is not None:
        donor.notes = request.notes or None
    await db.commit()

    logger.info(
        "DONOR_MODERATED | streamer=%s | donor=%s | blocked=%s",
        streamer_id, donor_id, donor.is_blocked,
    )
    donor = await donors_repository.get_donor(db, donor_id=donor_id, streamer_id=streamer_id)
    await publish_rows(feed, "UPDATE", donor)
    return DonorResponse.model_validate(donor)


def _threshold(settings) -> int:
    if settings is None or not settings.mvp_win_count:
        return DEFAULT_WIN_THRESHOLD
    return settings.mvp_win_count


def mvp_record_response(record, threshold: int) -> MvpRecordResponse:
    claims = list(record.claims)
    return MvpRecordResponse(
        id=record.id,
        player_identifier=record.player_identifier,
        player_name=record.player_name,
        total_mvp_wins=record.total_mvp_wins,
        total_games_played=record.total_games_played,
        rewards_earned=rewards_earned(record.total_mvp_wins, threshold),
        rewards_claimed=len(claims),
        pending_rewards=pending_rewards(record.total_mvp_wins, threshold, len(claims)),
        claims=[RewardClaimResponse.model_validate(c) for c in claims],
    )


async def list_mvp_records(db, *, streamer_id: str) -> MvpListResponse:
    settings = await donors_repository.get_settings_for_streamer(db, streamer_id=streamer_id)
    threshold = _threshold(settings)
    records = await donors_repository.list_mvp_records(db, streamer_id=streamer_id)
    return MvpListResponse(
        reward_enabled=bool(settings and settings.mvp_reward_enabled),
        win_threshold=threshold,
        records=[mvp_record_response(r, threshold) for r in records],
    )


async def claim_reward(db, *, record_id: int, streamer_id: str, feed, now: Optional[datetime] = None):
    """
    Record one reward claim for an MVP.

    Allowed only while the streamer's reward rule is on and the player has
    unclaimed rewards. The MVP record row is locked for the duration.
    """
    settings = await donors_repository.get_settings_for_streamer(db, streamer_id=streamer_id)
    if settings is None or not settings.mvp_reward_enabled:
        raise InvalidStateError("MVP rewards are not enabled")
    threshold = _threshold(settings)
    description = settings.mvp_reward_description

    try:
        record = await donors_repository.get_mvp_record_for_update(
            db, record_id=record_id, streamer_id=streamer_id
        )
        if record is None:
            raise NotFoundError("MVP record not found")
        claimed = await donors_repository.count_claims(db, record_id=record_id)
        available = pending_rewards(record.total_mvp_wins, threshold, claimed)
        if available <= 0:
            raise InvalidStateError("No pending rewards to claim")

        claim = RewardClaim(
            mvp_record_id=record_id,
            reward_type="mvp_reward",
            reward_description=description,
            claimed_at=now or datetime.utcnow(),
        )
        db.add(claim)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "MVP_REWARD_CLAIMED | streamer=%s | record=%s | claim=%s | remaining=%s",
        streamer_id, record_id, claim.id, available - 1,
    )
    await publish_rows(feed, "INSERT", claim, streamer_id=streamer_id)
    return RewardClaimResponse.model_validate(claim)


async def fulfill_claim(db, *, claim_id: int, streamer_id: str, feed, now: Optional[datetime] = None):
    claim = await donors_repository.get_claim(db, claim_id=claim_id, streamer_id=streamer_id)
    if claim is None:
        raise NotFoundError("Reward claim not found")
    if claim.fulfilled:
        raise InvalidStateError("Reward claim already fulfilled")

    claim.fulfilled = True
    claim.fulfilled_at = now or datetime.utcnow()
    await db.commit()

    logger.info("MVP_REWARD_FULFILLED | streamer=%s | claim=%s", streamer_id, claim_id)
    await publish_rows(feed, "UPDATE", claim, streamer_id=streamer_id)
    return RewardClaimResponse.model_validate(claim)
