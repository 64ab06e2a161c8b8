"""
Typed shapes for the JSON columns and the change feed.

JSON columns are parsed through these models whenever they are read from or
written to the database, so nothing downstream handles raw dicts.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class RoleConfig(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    icon: Optional[str] = None
    max_count: Optional[int] = Field(None, ge=1)


class CustomFieldConfig(BaseModel):
    id: str = Field(..., min_length=1)
    label: str
    type: Literal["text", "number", "select"] = "text"
    required: bool = False
    options: List[str] = Field(default_factory=list)


class GatewayStatusRecord(BaseModel):
    """Last gateway status seen for an order, and which path delivered it."""

    transaction_status: Optional[str] = None
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    status_code: Optional[str] = None
    gross_amount: Optional[str] = None
    source: Literal["create", "webhook", "poll", "status_query", "admin"] = "webhook"
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class EntryCustomData(BaseModel):
    gateway_transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_status: Optional[GatewayStatusRecord] = None
    fields: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_column(cls, raw: Optional[Dict[str, Any]]) -> "EntryCustomData":
        return cls.model_validate(raw or {})

    def to_column(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ChangeEvent(BaseModel):
    type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    streamer_id: str
    record: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=datetime.utcnow)
