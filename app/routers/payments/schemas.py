"""Payments schemas."""

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreatePaymentRequest(BaseModel):
    namespace_id: int = Field(..., description="mabar_settings id of the streamer's queue")
    streamer_id: Optional[str] = Field(None, description="Must match the namespace when sent")
    player_name: str = Field(..., min_length=1, max_length=100)
    game_id: str = Field(..., min_length=1, max_length=100)
    game_nickname: str = Field(..., min_length=1, max_length=100)
    selected_role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    amount: int = Field(..., gt=0, description="Amount in IDR, must equal price_per_slot")
    payment_method: str = Field(..., description="qris, gopay, shopeepay, dana, ovo, bca_va, ...")
    desired_position: Optional[int] = Field(
        None, ge=1, description="Advisory only; the allocated position is returned"
    )
    custom_fields: Dict[str, str] = Field(default_factory=dict)


class PaymentDescriptor(BaseModel):
    kind: Literal["qr", "deeplink", "virtual_account"]
    qr_code_url: Optional[str] = None
    payment_url: Optional[str] = None
    va_number: Optional[str] = None
    bank: Optional[str] = None
    expiry_time: Optional[str] = None


class CreatePaymentResponse(BaseModel):
    success: bool = True
    order_id: str
    transaction_status: Optional[str] = None
    payment: PaymentDescriptor
    queue_entry_id: Optional[int] = None
    queue_position: Optional[int] = None


class MidtransNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: str
    status_code: Optional[str] = None
    transaction_status: Optional[str] = None
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    signature_key: Optional[str] = None
    gross_amount: Optional[str] = None
    transaction_id: Optional[str] = None
    transaction_time: Optional[str] = None

    @field_validator("order_id", "status_code", "gross_amount", mode="before")
    @classmethod
    def numbers_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class WebhookAck(BaseModel):
    success: bool = True
    status: str
    order_id: Optional[str] = None


class PaymentStatusResponse(BaseModel):
    success: bool = True
    order_id: str
    source: Literal["local", "gateway", "local_fallback"]
    payment_status: Optional[str] = None
    entry_status: Optional[str] = None
    transaction_status: Optional[str] = None
    queue_entry_id: Optional[int] = None
    queue_position: Optional[int] = None
    paid_at: Optional[datetime] = None


class ManualStatusUpdateRequest(BaseModel):
    new_status: Literal["pending", "completed", "failed", "refunded"]
    reason: Optional[str] = Field(None, max_length=500)


class PollSummaryResponse(BaseModel):
    checked: int
    updated: int
    unchanged: int
    errors: int
    capture_alerts: int
