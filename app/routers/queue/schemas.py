"""Queue and namespace settings schemas."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.schemas import CustomFieldConfig, RoleConfig


class SettingsUpsertRequest(BaseModel):
    game_type: str = Field("mobile_legends", min_length=1)
    price_per_slot: int = Field(..., gt=0, description="Price per slot in IDR")
    currency: str = Field("IDR", min_length=3, max_length=3)
    max_queue_size: int = Field(50, ge=1, le=500)
    min_players_to_start: int = Field(1, ge=1)
    roles: List[RoleConfig] = Field(default_factory=list)
    custom_fields: List[CustomFieldConfig] = Field(default_factory=list)
    mvp_reward_enabled: bool = False
    mvp_reward_description: Optional[str] = Field(None, max_length=500)
    mvp_win_count: int = Field(3, ge=1)
    is_active: bool = True

    @field_validator("roles")
    @classmethod
    def unique_role_ids(cls, roles):
        ids = [r.id for r in roles]
        if len(ids) != len(set(ids)):
            raise ValueError("Role ids must be unique")
        return roles

    @field_validator("custom_fields")
    @classmethod
    def unique_field_ids(cls, fields):
        ids = [f.id for f in fields]
        if len(ids) != len(set(ids)):
            raise ValueError("Custom field ids must be unique")
        return fields


class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    streamer_id: str
    game_type: str
    price_per_slot: int
    currency: str
    max_queue_size: int
    min_players_to_start: int
    roles: List[RoleConfig]
    custom_fields: List[CustomFieldConfig]
    mvp_reward_enabled: bool
    mvp_reward_description: Optional[str] = None
    mvp_win_count: int
    is_active: bool
    active_entries: Optional[int] = None


class QueueEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    namespace_id: int
    player_name: str
    game_id: str
    game_nickname: Optional[str] = None
    selected_role: Optional[str] = None
    amount: int
    payment_status: str
    payment_id: str
    payment_method: Optional[str] = None
    queue_position: int
    entry_status: str
    fields: Dict[str, str] = Field(default_factory=dict)
    joined_at: datetime
    paid_at: Optional[datetime] = None


class PublicQueueEntry(BaseModel):
    queue_position: int
    player_name: str
    game_nickname: Optional[str] = None
    selected_role: Optional[str] = None
    entry_status: str


class QueueListResponse(BaseModel):
    entries: List[QueueEntryResponse]
    total: int


class PublicQueueResponse(BaseModel):
    streamer_id: str
    entries: List[PublicQueueEntry]


class EntryActionResponse(BaseModel):
    success: bool = True
    entry: QueueEntryResponse
