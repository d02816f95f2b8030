from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from delivery_orders.models import (
    ActorRole,
    OrderStatus,
    SubscriptionFrequency,
    SubscriptionStatus,
)


@dataclass(frozen=True)
class OrderRecord:
    id: int | None
    customer_id: int
    customer_user_id: int
    vendor_id: int
    product_id: int
    order_date: date
    quantity: Decimal
    unit: str
    price_per_unit: Decimal
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    delivered_at: datetime | None = None
    dispute_raised: bool = False
    dispute_reason: str | None = None
    placed_by_user_id: int | None = None
    placed_by_role: ActorRole | None = None
    updated_by_user_id: int | None = None
    subscription_id: int | None = None


@dataclass(frozen=True)
class OrderDraft:
    customer_id: int
    customer_user_id: int
    vendor_id: int
    product_id: int
    order_date: date
    quantity: Decimal
    subscription_id: int | None = None


@dataclass(frozen=True)
class OrderEdit:
    quantity: Decimal | None = None
    product_id: int | None = None
    order_date: date | None = None

    def is_empty(self) -> bool:
        return self.quantity is None and self.product_id is None and self.order_date is None


@dataclass(frozen=True)
class SubscriptionRecord:
    id: int | None
    customer_id: int
    customer_user_id: int
    vendor_id: int
    product_id: int
    frequency: SubscriptionFrequency
    start_date: date
    original_start_date: date
    quantity: Decimal
    unit: str
    price_per_unit: Decimal
    end_date: date | None = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    paused_from: date | None = None
    paused_until: date | None = None
    weekly_days: tuple[int, ...] = field(default_factory=tuple)
    monthly_day: int | None = None
    created_by_user_id: int | None = None
