from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from delivery_orders.models import OrderStatus, SubscriptionFrequency


class PlaceOrderRequest(BaseModel):
    customer_id: int | None = None
    vendor_id: int
    product_id: int
    order_dates: list[date] = Field(min_length=1)
    quantity: Decimal = Field(gt=0)


class EditOrderRequest(BaseModel):
    quantity: Decimal | None = Field(default=None, gt=0)
    product_id: int | None = None
    order_date: date | None = None


class StatusRequest(BaseModel):
    status: OrderStatus
    delivered_at: datetime | None = None


class ToggleRequest(BaseModel):
    delivered_at: datetime | None = None


class DisputeRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def strip_reason(cls, value: str) -> str:
        return value.strip()


class ResolveDisputeRequest(BaseModel):
    resolution: OrderStatus


class BulkRequest(BaseModel):
    order_ids: list[int]
    delivered_at: datetime | None = None


class BulkEditRequest(EditOrderRequest):
    order_ids: list[int]


class CreateSubscriptionRequest(BaseModel):
    customer_id: int | None = None
    vendor_id: int
    product_id: int
    frequency: SubscriptionFrequency
    start_date: date
    end_date: date | None = None
    quantity: Decimal = Field(gt=0)
    weekly_days: list[int] = Field(default_factory=list)
    monthly_day: int | None = Field(default=None, ge=1, le=31)

    @field_validator('weekly_days')
    @classmethod
    def validate_weekly_days(cls, value: list[int]) -> list[int]:
        """Days are numbered from Sunday = 0 through Saturday = 6."""
        if any(day < 0 or day > 6 for day in value):
            raise ValueError('Weekly days must be between 0 and 6')
        return sorted(set(value))


class PauseSubscriptionRequest(BaseModel):
    paused_from: date
    paused_until: date


class GenerateRequest(BaseModel):
    range_end: date | None = None
