from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from delivery_orders.errors import NotFound
from delivery_orders.models import Order, OrderStatus, Subscription, SubscriptionStatus
from delivery_orders.services.calendar_service import to_utc
from delivery_orders.services.order_records import OrderRecord, SubscriptionRecord


@dataclass(frozen=True)
class OrderQuery:
    start_date: date | None = None
    end_date: date | None = None
    vendor_id: int | None = None
    product_id: int | None = None
    customer_id: int | None = None
    subscription_id: int | None = None
    statuses: tuple[OrderStatus, ...] = ()
    ids: tuple[int, ...] = ()


class OrderRepository(Protocol):
    def find_orders(self, query: OrderQuery) -> list[OrderRecord]: ...

    def get_order(self, order_id: int) -> OrderRecord: ...

    def create_order(self, record: OrderRecord) -> OrderRecord: ...

    def update_order(self, record: OrderRecord) -> OrderRecord: ...

    def delete_order(self, order_id: int) -> None: ...

    def existing_order_dates(
        self,
        *,
        customer_id: int,
        vendor_id: int,
        product_id: int,
        dates: Iterable[date],
        subscription_id: int | None = None,
    ) -> set[date]: ...


class SubscriptionRepository(Protocol):
    def find_subscriptions(
        self, *, statuses: Iterable[SubscriptionStatus] = (), customer_id: int | None = None
    ) -> list[SubscriptionRecord]: ...

    def get_subscription(self, subscription_id: int) -> SubscriptionRecord: ...

    def create_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord: ...

    def update_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord: ...


def order_to_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        customer_id=row.customer_id,
        customer_user_id=row.customer_user_id,
        vendor_id=row.vendor_id,
        product_id=row.product_id,
        order_date=row.order_date,
        quantity=Decimal(row.quantity),
        unit=row.unit,
        price_per_unit=Decimal(row.price_per_unit),
        total_amount=Decimal(row.total_amount),
        status=OrderStatus(row.status),
        delivered_at=to_utc(row.delivered_at),
        dispute_raised=bool(row.dispute_raised),
        dispute_reason=row.dispute_reason,
        placed_by_user_id=row.placed_by_user_id,
        placed_by_role=row.placed_by_role,
        updated_by_user_id=row.updated_by_user_id,
        subscription_id=row.subscription_id,
    )


def _write_order_fields(row: Order, record: OrderRecord) -> None:
    row.customer_id = record.customer_id
    row.customer_user_id = record.customer_user_id
    row.vendor_id = record.vendor_id
    row.product_id = record.product_id
    row.subscription_id = record.subscription_id
    row.order_date = record.order_date
    row.quantity = record.quantity
    row.unit = record.unit
    row.price_per_unit = record.price_per_unit
    row.total_amount = record.total_amount
    row.status = record.status
    row.delivered_at = to_utc(record.delivered_at)
    row.dispute_raised = record.dispute_raised
    row.dispute_reason = record.dispute_reason
    row.placed_by_user_id = record.placed_by_user_id
    row.placed_by_role = record.placed_by_role
    row.updated_by_user_id = record.updated_by_user_id


def subscription_to_record(row: Subscription) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row.id,
        customer_id=row.customer_id,
        customer_user_id=row.customer_user_id,
        vendor_id=row.vendor_id,
        product_id=row.product_id,
        frequency=row.frequency,
        start_date=row.start_date,
        original_start_date=row.original_start_date,
        end_date=row.end_date,
        status=SubscriptionStatus(row.status),
        paused_from=row.paused_from,
        paused_until=row.paused_until,
        quantity=Decimal(row.quantity),
        unit=row.unit,
        price_per_unit=Decimal(row.price_per_unit),
        weekly_days=tuple(row.weekly_days or ()),
        monthly_day=row.monthly_day,
        created_by_user_id=row.created_by_user_id,
    )


def _write_subscription_fields(row: Subscription, record: SubscriptionRecord) -> None:
    row.customer_id = record.customer_id
    row.customer_user_id = record.customer_user_id
    row.vendor_id = record.vendor_id
    row.product_id = record.product_id
    row.frequency = record.frequency
    row.start_date = record.start_date
    row.original_start_date = record.original_start_date
    row.end_date = record.end_date
    row.status = record.status
    row.paused_from = record.paused_from
    row.paused_until = record.paused_until
    row.quantity = record.quantity
    row.unit = record.unit
    row.price_per_unit = record.price_per_unit
    row.weekly_days = list(record.weekly_days)
    row.monthly_day = record.monthly_day
    row.created_by_user_id = record.created_by_user_id


class SqlOrderRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _row(self, order_id: int) -> Order:
        row = self.db.get(Order, order_id)
        if row is None:
            raise NotFound(f'Order {order_id} not found', entity_id=order_id)
        return row

    def find_orders(self, query: OrderQuery) -> list[OrderRecord]:
        conditions = []
        if query.start_date is not None:
            conditions.append(Order.order_date >= query.start_date)
        if query.end_date is not None:
            conditions.append(Order.order_date <= query.end_date)
        if query.vendor_id is not None:
            conditions.append(Order.vendor_id == query.vendor_id)
        if query.product_id is not None:
            conditions.append(Order.product_id == query.product_id)
        if query.customer_id is not None:
            conditions.append(Order.customer_id == query.customer_id)
        if query.subscription_id is not None:
            conditions.append(Order.subscription_id == query.subscription_id)
        if query.statuses:
            conditions.append(Order.status.in_(list(query.statuses)))
        if query.ids:
            conditions.append(Order.id.in_(list(query.ids)))

        stmt = select(Order).order_by(Order.order_date.asc(), Order.id.asc())
        if conditions:
            stmt = stmt.where(and_(*conditions))
        return [order_to_record(row) for row in self.db.execute(stmt).scalars().all()]

    def get_order(self, order_id: int) -> OrderRecord:
        return order_to_record(self._row(order_id))

    def create_order(self, record: OrderRecord) -> OrderRecord:
        row = Order()
        _write_order_fields(row, record)
        self.db.add(row)
        self.db.flush()
        return order_to_record(row)

    def update_order(self, record: OrderRecord) -> OrderRecord:
        if record.id is None:
            raise NotFound('Cannot update an order without an id')
        row = self._row(record.id)
        _write_order_fields(row, record)
        row.updated_at = func.now()
        self.db.flush()
        self.db.refresh(row)
        return order_to_record(row)

    def delete_order(self, order_id: int) -> None:
        self.db.delete(self._row(order_id))
        self.db.flush()

    def existing_order_dates(
        self,
        *,
        customer_id: int,
        vendor_id: int,
        product_id: int,
        dates: Iterable[date],
        subscription_id: int | None = None,
    ) -> set[date]:
        """Dates already holding an order for the same line, or for the same subscription."""
        wanted = list(dates)
        if not wanted:
            return set()
        same_line = and_(
            Order.customer_id == customer_id,
            Order.vendor_id == vendor_id,
            Order.product_id == product_id,
        )
        if subscription_id is not None:
            same_line = or_(same_line, Order.subscription_id == subscription_id)
        rows = self.db.execute(
            select(Order.order_date).where(same_line, Order.order_date.in_(wanted))
        ).all()
        return {row[0] for row in rows}


class SqlSubscriptionRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _row(self, subscription_id: int) -> Subscription:
        row = self.db.get(Subscription, subscription_id)
        if row is None:
            raise NotFound(f'Subscription {subscription_id} not found', entity_id=subscription_id)
        return row

    def find_subscriptions(
        self, *, statuses: Iterable[SubscriptionStatus] = (), customer_id: int | None = None
    ) -> list[SubscriptionRecord]:
        stmt = select(Subscription).order_by(Subscription.created_at.desc(), Subscription.id.desc())
        wanted = list(statuses)
        if wanted:
            stmt = stmt.where(Subscription.status.in_(wanted))
        if customer_id is not None:
            stmt = stmt.where(Subscription.customer_id == customer_id)
        return [subscription_to_record(row) for row in self.db.execute(stmt).scalars().all()]

    def get_subscription(self, subscription_id: int) -> SubscriptionRecord:
        return subscription_to_record(self._row(subscription_id))

    def create_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        row = Subscription()
        _write_subscription_fields(row, record)
        self.db.add(row)
        self.db.flush()
        return subscription_to_record(row)

    def update_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        if record.id is None:
            raise NotFound('Cannot update a subscription without an id')
        row = self._row(record.id)
        _write_subscription_fields(row, record)
        row.updated_at = func.now()
        self.db.flush()
        self.db.refresh(row)
        return subscription_to_record(row)
