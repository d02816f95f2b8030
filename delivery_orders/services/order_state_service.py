from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from delivery_orders.auth import Principal
from delivery_orders.errors import InvalidState, ValidationError
from delivery_orders.models import OrderStatus
from delivery_orders.services.authorization_service import OrderAction, authorize
from delivery_orders.services.calendar_service import today_for
from delivery_orders.services.order_records import OrderDraft, OrderEdit, OrderRecord

MONEY_PRECISION = Decimal('0.01')
DISPUTE_RESOLUTIONS = frozenset({OrderStatus.DELIVERED, OrderStatus.PENDING})


def quantize_money(value: Decimal, precision: Decimal = MONEY_PRECISION) -> Decimal:
    return value.quantize(precision, rounding=ROUND_HALF_UP)


def compute_total(quantity: Decimal, price_per_unit: Decimal, precision: Decimal = MONEY_PRECISION) -> Decimal:
    return quantize_money(Decimal(quantity) * Decimal(price_per_unit), precision)


def validate_quantity(quantity: Decimal, *, entity_id: int | None = None) -> Decimal:
    try:
        value = Decimal(quantity)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise ValidationError(f'Invalid quantity: {quantity!r}', entity_id=entity_id) from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError('Quantity must be greater than zero', entity_id=entity_id)
    return value


def build_order(
    draft: OrderDraft,
    actor: Principal,
    *,
    unit: str,
    price_per_unit: Decimal,
    precision: Decimal = MONEY_PRECISION,
) -> OrderRecord:
    quantity = validate_quantity(draft.quantity)
    if price_per_unit < 0:
        raise ValidationError('Unit price cannot be negative')
    return OrderRecord(
        id=None,
        customer_id=draft.customer_id,
        customer_user_id=draft.customer_user_id,
        vendor_id=draft.vendor_id,
        product_id=draft.product_id,
        order_date=draft.order_date,
        quantity=quantity,
        unit=unit,
        price_per_unit=price_per_unit,
        total_amount=compute_total(quantity, price_per_unit, precision),
        status=OrderStatus.PENDING,
        placed_by_user_id=actor.id,
        placed_by_role=actor.role,
        subscription_id=draft.subscription_id,
    )


def mark_delivered(order: OrderRecord, actor: Principal, now: datetime, *, delivered_at: datetime | None = None) -> OrderRecord:
    if order.status != OrderStatus.PENDING:
        raise InvalidState(f'Order {order.id} is {order.status.value}; only pending orders can be delivered', entity_id=order.id)
    authorize(OrderAction.TOGGLE, order, actor, today_for(now))
    return replace(
        order,
        status=OrderStatus.DELIVERED,
        delivered_at=delivered_at or now,
        updated_by_user_id=actor.id,
    )


def mark_pending(order: OrderRecord, actor: Principal, now: datetime) -> OrderRecord:
    if order.status != OrderStatus.DELIVERED:
        raise InvalidState(f'Order {order.id} is {order.status.value}; only delivered orders can be reverted', entity_id=order.id)
    if order.dispute_raised:
        raise InvalidState(f'Order {order.id} has an open dispute; resolve it instead', entity_id=order.id)
    authorize(OrderAction.TOGGLE, order, actor, today_for(now))
    return replace(
        order,
        status=OrderStatus.PENDING,
        delivered_at=None,
        updated_by_user_id=actor.id,
    )


def toggle_status(order: OrderRecord, actor: Principal, now: datetime, *, delivered_at: datetime | None = None) -> OrderRecord:
    if order.status == OrderStatus.PENDING:
        return mark_delivered(order, actor, now, delivered_at=delivered_at)
    if order.status == OrderStatus.DELIVERED:
        return mark_pending(order, actor, now)
    raise InvalidState(f'Order {order.id} is cancelled', entity_id=order.id)


def apply_status(order: OrderRecord, actor: Principal, now: datetime, target: OrderStatus, *, delivered_at: datetime | None = None) -> OrderRecord:
    if target == OrderStatus.DELIVERED:
        return mark_delivered(order, actor, now, delivered_at=delivered_at)
    if target == OrderStatus.PENDING:
        return mark_pending(order, actor, now)
    if target == OrderStatus.CANCELLED:
        return cancel_order(order, actor, now)
    raise ValidationError(f'Unsupported target status: {target!r}', entity_id=order.id)


def cancel_order(order: OrderRecord, actor: Principal, now: datetime) -> OrderRecord:
    if order.status != OrderStatus.PENDING:
        raise InvalidState(f'Order {order.id} is {order.status.value}; only pending orders can be cancelled', entity_id=order.id)
    authorize(OrderAction.CANCEL, order, actor, today_for(now))
    return replace(order, status=OrderStatus.CANCELLED, updated_by_user_id=actor.id)


def check_deletable(order: OrderRecord, actor: Principal, now: datetime) -> None:
    authorize(OrderAction.DELETE, order, actor, today_for(now))


def raise_dispute(order: OrderRecord, actor: Principal, now: datetime, reason: str) -> OrderRecord:
    if order.status != OrderStatus.DELIVERED:
        raise InvalidState(f'Order {order.id} is {order.status.value}; only delivered orders can be disputed', entity_id=order.id)
    if order.dispute_raised:
        raise InvalidState(f'Order {order.id} already has an open dispute', entity_id=order.id)
    clean_reason = (reason or '').strip()
    if not clean_reason:
        raise ValidationError('A dispute reason is required', entity_id=order.id)
    authorize(OrderAction.DISPUTE, order, actor, today_for(now))
    return replace(order, dispute_raised=True, dispute_reason=clean_reason)


def clear_dispute(order: OrderRecord, actor: Principal, now: datetime, resolution: OrderStatus) -> OrderRecord:
    if not order.dispute_raised:
        raise InvalidState(f'Order {order.id} has no open dispute', entity_id=order.id)
    if resolution not in DISPUTE_RESOLUTIONS:
        raise ValidationError('A dispute resolves to delivered or pending', entity_id=order.id)
    authorize(OrderAction.RESOLVE, order, actor, today_for(now))
    # Provenance is left as is: the resolved order keeps its last status author.
    return replace(
        order,
        status=resolution,
        delivered_at=order.delivered_at if resolution == OrderStatus.DELIVERED else None,
        dispute_raised=False,
        dispute_reason=None,
    )


def edit_order(
    order: OrderRecord,
    actor: Principal,
    now: datetime,
    edit: OrderEdit,
    *,
    unit_price: Decimal,
    unit: str | None = None,
    precision: Decimal = MONEY_PRECISION,
) -> OrderRecord:
    if edit.is_empty():
        raise ValidationError('Nothing to change', entity_id=order.id)
    if order.status == OrderStatus.CANCELLED:
        raise InvalidState(f'Order {order.id} is cancelled', entity_id=order.id)
    if (
        order.status == OrderStatus.DELIVERED
        and edit.order_date is not None
        and edit.order_date != order.order_date
    ):
        raise InvalidState(f'Order {order.id} is delivered; its date cannot change', entity_id=order.id)
    authorize(OrderAction.EDIT, order, actor, today_for(now))

    quantity = validate_quantity(edit.quantity, entity_id=order.id) if edit.quantity is not None else order.quantity
    return replace(
        order,
        quantity=quantity,
        product_id=edit.product_id if edit.product_id is not None else order.product_id,
        order_date=edit.order_date if edit.order_date is not None else order.order_date,
        unit=unit or order.unit,
        price_per_unit=unit_price,
        total_amount=compute_total(quantity, unit_price, precision),
    )


def is_consistent(order: OrderRecord, precision: Decimal = MONEY_PRECISION) -> bool:
    if order.dispute_raised and order.status != OrderStatus.DELIVERED:
        return False
    return order.total_amount == compute_total(order.quantity, order.price_per_unit, precision)
