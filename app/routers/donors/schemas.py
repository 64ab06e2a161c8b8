"""Donor and MVP ledger schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DonorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    streamer_id: str
    game_id: str
    player_name: str
    game_nickname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    total_donations: int
    total_amount_spent: int
    total_games_played: int
    total_mvp_wins: int
    favorite_role: Optional[str] = None
    first_donation_at: Optional[datetime] = None
    last_donation_at: Optional[datetime] = None
    customer_tier: str
    is_blocked: bool
    notes: Optional[str] = None


class DonorListResponse(BaseModel):
    donors: List[DonorResponse]
    total: int


class ModerationRequest(BaseModel):
    is_blocked: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=2000)


class RewardClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    mvp_record_id: int
    reward_type: str
    reward_description: Optional[str] = None
    claimed_at: datetime
    fulfilled: bool
    fulfilled_at: Optional[datetime] = None


class MvpRecordResponse(BaseModel):
    id: int
    player_identifier: str
    player_name: str
    total_mvp_wins: int
    total_games_played: int
    rewards_earned: int
    rewards_claimed: int
    pending_rewards: int
    claims: List[RewardClaimResponse] = Field(default_factory=list)


class MvpListResponse(BaseModel):
    reward_enabled: bool
    win_threshold: int
    records: List[MvpRecordResponse]
