# Файл: subscription_engine/models/subscription.py

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Generic, List, Literal, Optional, TypeVar
from pydantic import BaseModel, Field, field_validator, model_validator

T = TypeVar("T")

SortField = Literal["days_left", "created_at", "end_at", "start_at", "price_paid", "status", "id"]


class SubscriptionRequest(BaseModel):
    user_id: int
    tariff_id: int
    location_id: int
    category_ids: List[int] = Field(..., min_length=1)

    @field_validator("category_ids")
    @classmethod
    def _unique_categories(cls, value: List[int]) -> List[int]:
        return list(dict.fromkeys(value))


class ActivationRequest(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    duration_hours: Optional[int] = Field(None, gt=0)


class ExtensionRequest(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=100)
    new_price: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    duration_hours: Optional[int] = Field(None, gt=0)


class SubscriptionInDB(BaseModel):
    id: int
    user_id: int
    tariff_id: int
    category_id: int
    location_id: int
    is_demo: bool
    price_paid: Decimal
    status: str
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_enabled: bool
    payment_method: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    requested_tariff_id: Optional[int] = None
    notified_3d: Optional[datetime] = None
    notified_1d: Optional[datetime] = None
    notified_1h: Optional[datetime] = None
    notified_15m: Optional[datetime] = None
    notified_expired: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# Строка списка для админки: денормализованные названия и вычисляемый остаток
class SubscriptionView(SubscriptionInDB):
    tariff_name: str
    tariff_code: str
    category_name: str
    location_name: str
    days_left: int = 0
    remaining_seconds: int = 0


class HistoryEntryInDB(BaseModel):
    id: int
    user_id: int
    subscription_id: Optional[int] = None
    action: str
    tariff_name: str
    category_name: str
    location_name: str
    price_paid: Decimal
    action_at: datetime
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class SubscriptionFilter(BaseModel):
    user_id: Optional[int] = None
    tariff_id: Optional[int] = None
    statuses: List[str] = []
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    days_left_min: Optional[int] = Field(None, ge=0)
    days_left_max: Optional[int] = Field(None, ge=0)
    sort_by: SortField = "created_at"
    sort_dir: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    per_page: int = Field(20, ge=1, le=500)

    @model_validator(mode="after")
    def _check_ranges(self) -> "SubscriptionFilter":
        if self.days_left_min is not None and self.days_left_max is not None and self.days_left_min > self.days_left_max:
            raise ValueError("days_left_min must not exceed days_left_max")
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise ValueError("created_from must not be after created_to")
        return self


class HistoryFilter(BaseModel):
    user_id: Optional[int] = None
    subscription_id: Optional[int] = None
    actions: List[str] = []
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_dir: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    per_page: int = Field(50, ge=1, le=500)


class Page(BaseModel, Generic[T]):
    items: List[T] = []
    total: int = 0
    per_page: int
    current_page: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page


class BulkFailure(BaseModel):
    id: int
    error: str
    message: str


class BulkActivationResult(BaseModel):
    succeeded: List[SubscriptionInDB] = []
    failed: List[BulkFailure] = []

    @property
    def succeeded_ids(self) -> List[int]:
        return [s.id for s in self.succeeded]
