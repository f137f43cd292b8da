"""
schemas.py - Pydantic shapes shared by services, repositories and routes.
Budgets are snapshots read from the persistence layer; alert events and
notifications are the records this service appends.
"""

from datetime import datetime, timezone, date as date_type
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


BUCKET_NONE = "none"
BUCKET_NOT_APPLICABLE = "not_applicable"

Bucket = Union[int, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_str(value):
    if value is None:
        return None
    return str(value)


class Budget(BaseModel):
    """A spending ceiling for one category, as last seen in storage."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[str] = None
    total: float = 0.0
    spent: float = 0.0

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v):
        return _as_str(v)


class AlertEvent(BaseModel):
    id: Optional[str] = None
    user_id: str
    budget_id: str
    category: str
    amount_spent: float
    total_budget: float
    percentage_used: float
    percentage_bucket: int
    email_sent_to: Optional[str] = None
    email_delivered: bool = False
    dedupe_key: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("id", "user_id", "budget_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v):
        return _as_str(v)


class Notification(BaseModel):
    id: Optional[str] = None
    user_id: str
    type: str = "budget_alert"
    title: str
    message: str
    read: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v):
        return _as_str(v)


class ReceiptItem(BaseModel):
    name: str
    price: float = 0.0


class ReceiptExtraction(BaseModel):
    """Fields pulled out of a receipt. Serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    store_name: str = Field(default="Unknown Store", alias="storeName")
    date: str = Field(default_factory=lambda: date_type.today().isoformat())
    total_amount: float = Field(default=0.0, ge=0, alias="totalAmount")
    items: list[ReceiptItem] = Field(default_factory=list)


class ThresholdResult(BaseModel):
    percentage: float
    bucket: Bucket
    severity: str

    @property
    def alertable(self) -> bool:
        return self.bucket not in (BUCKET_NONE, BUCKET_NOT_APPLICABLE)


class GeneratedContent(BaseModel):
    subject: str
    body: str
    used_fallback: bool = False
    provider: Optional[str] = None


class WeeklySummaryStats(BaseModel):
    total_spent: float
    total_budget: float
    overall_percentage: float
    overspent: list[str] = Field(default_factory=list)
    healthy: list[str] = Field(default_factory=list)
    budget_count: int = 0


class AlertOutcome(BaseModel):
    budget_id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[str] = None
    status: Literal["sent", "skipped", "skipped_cooldown", "error"]
    percentage: float = 0.0
    bucket: Bucket = BUCKET_NONE
    used_fallback: bool = False
    email_delivered: bool = False
    error: Optional[str] = None


class SummaryOutcome(BaseModel):
    user_id: str
    status: Literal["sent", "error"]
    budget_count: int = 0
    used_fallback: bool = False
    email_delivered: bool = False
    error: Optional[str] = None


# --- Request bodies ---

class BudgetAlertRequest(Budget):
    user_email: Optional[str] = None


class ReceiptScanRequest(BaseModel):
    text: Optional[str] = None
    image_base64: Optional[str] = None
