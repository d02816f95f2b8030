from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from delivery_orders.errors import ValidationError
from delivery_orders.models import OrderStatus
from delivery_orders.services.calendar_service import in_range
from delivery_orders.services.order_records import OrderRecord

SORT_KEYS = ('date', 'vendor', 'product', 'quantity', 'amount', 'status')
DISPLAY_PRECISION = Decimal('1')
ZERO = Decimal('0')


@dataclass(frozen=True)
class OrderFilters:
    start_date: date | None = None
    end_date: date | None = None
    vendor_id: int | None = None
    product_id: int | None = None
    customer_id: int | None = None


@dataclass(frozen=True)
class Bucket:
    count: int
    amount: Decimal
    display_amount: Decimal


@dataclass(frozen=True)
class OrderStats:
    total: Bucket
    future: Bucket
    delivered: Bucket
    disputed: Bucket
    pending: Bucket

    @property
    def forecast_amount(self) -> Decimal:
        return self.pending.display_amount

    def as_dict(self) -> dict:
        return {
            name: {'count': bucket.count, 'amount': str(bucket.display_amount)}
            for name, bucket in (
                ('total', self.total),
                ('future', self.future),
                ('delivered', self.delivered),
                ('disputed', self.disputed),
                ('pending', self.pending),
            )
        }


@dataclass(frozen=True)
class CustomerBill:
    customer_id: int
    total_orders: int
    delivered_orders: int
    pending_orders: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal


def round_for_display(value: Decimal, precision: Decimal = DISPLAY_PRECISION) -> Decimal:
    return value.quantize(precision, rounding=ROUND_HALF_UP)


def matches_filters(order: OrderRecord, filters: OrderFilters) -> bool:
    if not in_range(order.order_date, filters.start_date, filters.end_date):
        return False
    if filters.vendor_id is not None and order.vendor_id != filters.vendor_id:
        return False
    if filters.product_id is not None and order.product_id != filters.product_id:
        return False
    if filters.customer_id is not None and order.customer_id != filters.customer_id:
        return False
    return True


def filter_orders(orders: Iterable[OrderRecord], filters: OrderFilters) -> list[OrderRecord]:
    return [order for order in orders if matches_filters(order, filters)]


def _bucket(orders: list[OrderRecord], precision: Decimal) -> Bucket:
    amount = sum((order.total_amount for order in orders), ZERO)
    return Bucket(count=len(orders), amount=amount, display_amount=round_for_display(amount, precision))


def aggregate(
    orders: Iterable[OrderRecord],
    filters: OrderFilters,
    *,
    today: date,
    precision: Decimal = DISPLAY_PRECISION,
) -> OrderStats:
    live = [order for order in filter_orders(orders, filters) if order.status != OrderStatus.CANCELLED]
    delivered = [order for order in live if order.status == OrderStatus.DELIVERED]
    return OrderStats(
        total=_bucket(live, precision),
        future=_bucket([order for order in live if order.order_date >= today], precision),
        delivered=_bucket([order for order in delivered if not order.dispute_raised], precision),
        disputed=_bucket([order for order in delivered if order.dispute_raised], precision),
        pending=_bucket([order for order in live if order.status == OrderStatus.PENDING], precision),
    )


def sort_orders(
    orders: Iterable[OrderRecord],
    key: str = 'date',
    *,
    descending: bool = False,
    vendor_names: Mapping[int, str] | None = None,
    product_names: Mapping[int, str] | None = None,
) -> list[OrderRecord]:
    if key not in SORT_KEYS:
        raise ValidationError(f'Unknown sort key: {key!r}')
    vendor_names = vendor_names or {}
    product_names = product_names or {}

    key_funcs = {
        'date': lambda order: order.order_date,
        'vendor': lambda order: vendor_names.get(order.vendor_id, '').lower() or str(order.vendor_id),
        'product': lambda order: product_names.get(order.product_id, '').lower() or str(order.product_id),
        'quantity': lambda order: order.quantity,
        'amount': lambda order: order.total_amount,
        'status': lambda order: order.status.value,
    }
    # sorted() is stable in both directions, so ties keep collection order.
    return sorted(orders, key=key_funcs[key], reverse=descending)


def customer_bill_summaries(orders: Iterable[OrderRecord], filters: OrderFilters | None = None) -> list[CustomerBill]:
    selected = filter_orders(orders, filters or OrderFilters())
    by_customer: dict[int, list[OrderRecord]] = {}
    for order in selected:
        if order.status == OrderStatus.CANCELLED:
            continue
        by_customer.setdefault(order.customer_id, []).append(order)

    bills = []
    for customer_id, customer_orders in by_customer.items():
        delivered = [order for order in customer_orders if order.status == OrderStatus.DELIVERED]
        pending = [order for order in customer_orders if order.status != OrderStatus.DELIVERED]
        bills.append(
            CustomerBill(
                customer_id=customer_id,
                total_orders=len(customer_orders),
                delivered_orders=len(delivered),
                pending_orders=len(pending),
                total_amount=sum((order.total_amount for order in customer_orders), ZERO),
                paid_amount=sum((order.total_amount for order in delivered), ZERO),
                pending_amount=sum((order.total_amount for order in pending), ZERO),
            )
        )
    return sorted(bills, key=lambda bill: bill.total_amount, reverse=True)
