from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_orders.auth import Principal, Role
from delivery_orders.config import settings
from delivery_orders.errors import InsufficientResource, NotFound, PermissionDenied, ValidationError
from delivery_orders.logging_config import get_logger
from delivery_orders.models import Customer, OrderStatus, Product, Vendor
from delivery_orders.services import order_state_service as state
from delivery_orders.services.authorization_service import OrderPermissions, order_permissions
from delivery_orders.services.bulk_service import BulkResult, bulk_toggle_target, require_selection, run_bulk
from delivery_orders.services.calendar_service import Clock, default_clock, today_for
from delivery_orders.services.cutoff_service import is_orderable
from delivery_orders.services.notification_service import OrderEvent, publish_order_events
from delivery_orders.services.order_records import OrderDraft, OrderEdit, OrderRecord
from delivery_orders.services.order_repository import OrderQuery, SqlOrderRepository
from delivery_orders.services.pricing_service import DatabasePricingProvider, PricingProvider, ProductOffer

logger = get_logger(__name__)

SessionFactory = Callable[[], Session]


def _pricing(db: Session, pricing: PricingProvider | None) -> PricingProvider:
    return pricing or DatabasePricingProvider(db)


def _customer_user_id(db: Session, customer_id: int) -> int:
    user_id = db.execute(
        select(Customer.user_id).where(Customer.id == customer_id, Customer.active.is_(True))
    ).scalar_one_or_none()
    if user_id is None:
        raise NotFound(f'Customer {customer_id} not found', entity_id=customer_id)
    return user_id


def _ensure_can_place(actor: Principal, *, customer_id: int, vendor_id: int) -> None:
    if actor.is_admin:
        return
    if actor.role == Role.CUSTOMER and actor.customer_id == customer_id:
        return
    if actor.role == Role.VENDOR and actor.vendor_id == vendor_id:
        return
    raise PermissionDenied('Not allowed to place orders for this customer')


def _ensure_orderable(now: datetime, order_date: date, offer: ProductOffer) -> None:
    if not is_orderable(now, order_date, offer.cutoff_policy()):
        raise ValidationError(
            f'Ordering for {order_date.isoformat()} is closed for product {offer.product_id}',
            entity_id=offer.product_id,
        )


def _ensure_stock(quantity: Decimal, offer: ProductOffer) -> None:
    if offer.stock_quantity is not None and Decimal(quantity) > offer.stock_quantity:
        raise InsufficientResource(
            f'Only {offer.stock_quantity} {offer.unit} available, requested {quantity}',
            entity_id=offer.product_id,
        )


def _ensure_date_free(repo: SqlOrderRepository, order: OrderRecord, order_date: date) -> None:
    """A subscription holds at most one order per date."""
    if order.subscription_id is None or order_date == order.order_date:
        return
    siblings = repo.find_orders(
        OrderQuery(subscription_id=order.subscription_id, start_date=order_date, end_date=order_date)
    )
    if any(sibling.id != order.id for sibling in siblings):
        raise ValidationError(
            f'Subscription {order.subscription_id} already has an order on {order_date.isoformat()}',
            entity_id=order.id,
        )


def _event(action: str, actor: Principal, order: OrderRecord, **detail) -> OrderEvent:
    return OrderEvent(
        action=action,
        actor_user_id=actor.id,
        order_id=order.id,
        subscription_id=order.subscription_id,
        detail={'status': order.status.value, 'order_date': order.order_date.isoformat(), **detail},
    )


def list_orders(db: Session, query: OrderQuery) -> list[OrderRecord]:
    return SqlOrderRepository(db).find_orders(query)


def display_names(db: Session, orders: list[OrderRecord]) -> tuple[dict[int, str], dict[int, str]]:
    vendor_ids = {order.vendor_id for order in orders}
    product_ids = {order.product_id for order in orders}
    vendors: dict[int, str] = {}
    products: dict[int, str] = {}
    if vendor_ids:
        vendors = dict(db.execute(select(Vendor.id, Vendor.name).where(Vendor.id.in_(vendor_ids))).tuples().all())
    if product_ids:
        products = dict(db.execute(select(Product.id, Product.name).where(Product.id.in_(product_ids))).tuples().all())
    return vendors, products


def get_permissions(db: Session, *, actor: Principal, order_id: int, clock: Clock | None = None) -> OrderPermissions:
    order = SqlOrderRepository(db).get_order(order_id)
    return order_permissions(order, actor, today_for((clock or default_clock()).now()))


def place_orders(
    db: Session,
    *,
    actor: Principal,
    customer_id: int,
    vendor_id: int,
    product_id: int,
    order_dates: Iterable[date],
    quantity: Decimal,
    clock: Clock | None = None,
    pricing: PricingProvider | None = None,
) -> list[OrderRecord]:
    """Place one order per date; every date is checked before anything is written."""
    dates = sorted(set(order_dates))
    if not dates:
        raise ValidationError('Select at least one date')
    _ensure_can_place(actor, customer_id=customer_id, vendor_id=vendor_id)
    now = (clock or default_clock()).now()
    offer = _pricing(db, pricing).resolve_offer(vendor_id=vendor_id, product_id=product_id)
    for order_date in dates:
        _ensure_orderable(now, order_date, offer)
    _ensure_stock(quantity, offer)

    customer_user_id = _customer_user_id(db, customer_id)
    repo = SqlOrderRepository(db)
    created = []
    for order_date in dates:
        record = state.build_order(
            OrderDraft(
                customer_id=customer_id,
                customer_user_id=customer_user_id,
                vendor_id=vendor_id,
                product_id=product_id,
                order_date=order_date,
                quantity=quantity,
            ),
            actor,
            unit=offer.unit,
            price_per_unit=offer.price_per_unit,
            precision=settings.money_precision,
        )
        created.append(repo.create_order(record))

    publish_order_events(
        db,
        [_event('ORDER_PLACED', actor, order, total_amount=str(order.total_amount)) for order in created],
    )
    logger.info('Placed %s order(s) for customer %s product %s', len(created), customer_id, product_id)
    return created


def place_order(
    db: Session,
    *,
    actor: Principal,
    customer_id: int,
    vendor_id: int,
    product_id: int,
    order_date: date,
    quantity: Decimal,
    clock: Clock | None = None,
    pricing: PricingProvider | None = None,
) -> OrderRecord:
    return place_orders(
        db,
        actor=actor,
        customer_id=customer_id,
        vendor_id=vendor_id,
        product_id=product_id,
        order_dates=[order_date],
        quantity=quantity,
        clock=clock,
        pricing=pricing,
    )[0]


def set_order_status(
    db: Session,
    *,
    actor: Principal,
    order_id: int,
    target: OrderStatus,
    delivered_at: datetime | None = None,
    clock: Clock | None = None,
) -> OrderRecord:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    now = (clock or default_clock()).now()
    updated = repo.update_order(state.apply_status(order, actor, now, target, delivered_at=delivered_at))
    publish_order_events(db, [_event(f'ORDER_{target.value.upper()}', actor, updated)])
    return updated


def toggle_order_status(
    db: Session,
    *,
    actor: Principal,
    order_id: int,
    delivered_at: datetime | None = None,
    clock: Clock | None = None,
) -> OrderRecord:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    now = (clock or default_clock()).now()
    updated = repo.update_order(state.toggle_status(order, actor, now, delivered_at=delivered_at))
    publish_order_events(db, [_event(f'ORDER_{updated.status.value.upper()}', actor, updated)])
    return updated


def cancel_order(db: Session, *, actor: Principal, order_id: int, clock: Clock | None = None) -> OrderRecord:
    return set_order_status(db, actor=actor, order_id=order_id, target=OrderStatus.CANCELLED, clock=clock)


def delete_order(db: Session, *, actor: Principal, order_id: int, clock: Clock | None = None) -> None:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    state.check_deletable(order, actor, (clock or default_clock()).now())
    repo.delete_order(order_id)
    publish_order_events(db, [_event('ORDER_DELETED', actor, order)])


def raise_dispute(
    db: Session,
    *,
    actor: Principal,
    order_id: int,
    reason: str,
    clock: Clock | None = None,
) -> OrderRecord:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    updated = repo.update_order(state.raise_dispute(order, actor, (clock or default_clock()).now(), reason))
    publish_order_events(db, [_event('ORDER_DISPUTE_RAISED', actor, updated, reason=updated.dispute_reason)])
    return updated


def resolve_dispute(
    db: Session,
    *,
    actor: Principal,
    order_id: int,
    resolution: OrderStatus,
    clock: Clock | None = None,
) -> OrderRecord:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    updated = repo.update_order(state.clear_dispute(order, actor, (clock or default_clock()).now(), resolution))
    publish_order_events(db, [_event('ORDER_DISPUTE_RESOLVED', actor, updated, resolution=resolution.value)])
    return updated


def edit_order(
    db: Session,
    *,
    actor: Principal,
    order_id: int,
    edit: OrderEdit,
    clock: Clock | None = None,
    pricing: PricingProvider | None = None,
) -> OrderRecord:
    repo = SqlOrderRepository(db)
    order = repo.get_order(order_id)
    now = (clock or default_clock()).now()
    product_id = edit.product_id if edit.product_id is not None else order.product_id
    offer = _pricing(db, pricing).resolve_offer(vendor_id=order.vendor_id, product_id=product_id)

    if edit.order_date is not None and edit.order_date != order.order_date:
        _ensure_orderable(now, edit.order_date, offer)
    if edit.quantity is not None:
        _ensure_stock(edit.quantity, offer)

    changed = state.edit_order(
        order,
        actor,
        now,
        edit,
        unit_price=offer.price_per_unit,
        unit=offer.unit,
        precision=settings.money_precision,
    )
    _ensure_date_free(repo, order, changed.order_date)
    updated = repo.update_order(changed)
    publish_order_events(db, [_event('ORDER_EDITED', actor, updated, total_amount=str(updated.total_amount))])
    return updated


def _run_per_order(
    session_factory: SessionFactory,
    order_ids: list[int],
    *,
    action: str,
    work: Callable[[Session, int], object],
    max_workers: int | None,
    timeout: float | None,
) -> BulkResult:
    def _apply(order_id: int) -> None:
        with session_factory() as db:
            try:
                work(db, order_id)
                db.commit()
            except Exception:
                db.rollback()
                raise

    return run_bulk(
        order_ids,
        _apply,
        action=action,
        max_workers=max_workers or settings.bulk_max_workers,
        timeout=timeout if timeout is not None else settings.bulk_item_timeout_seconds,
    )


def bulk_toggle(
    session_factory: SessionFactory,
    *,
    actor: Principal,
    order_ids: Iterable[int],
    delivered_at: datetime | None = None,
    clock: Clock | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
) -> tuple[OrderStatus, BulkResult]:
    ids = require_selection(order_ids)
    clock = clock or default_clock()
    with session_factory() as db:
        selected = SqlOrderRepository(db).find_orders(OrderQuery(ids=tuple(ids)))
    if not selected:
        raise NotFound('None of the selected orders exist')
    target = bulk_toggle_target(selected)
    # One instant for the whole batch so every delivery carries the same timestamp.
    stamp = delivered_at or clock.now()

    result = _run_per_order(
        session_factory,
        ids,
        action=f'mark_{target.value}',
        work=lambda db, order_id: set_order_status(
            db, actor=actor, order_id=order_id, target=target, delivered_at=stamp, clock=clock
        ),
        max_workers=max_workers,
        timeout=timeout,
    )
    return target, result


def bulk_delete(
    session_factory: SessionFactory,
    *,
    actor: Principal,
    order_ids: Iterable[int],
    clock: Clock | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
) -> BulkResult:
    return _run_per_order(
        session_factory,
        require_selection(order_ids),
        action='delete',
        work=lambda db, order_id: delete_order(db, actor=actor, order_id=order_id, clock=clock),
        max_workers=max_workers,
        timeout=timeout,
    )


def bulk_edit(
    session_factory: SessionFactory,
    *,
    actor: Principal,
    order_ids: Iterable[int],
    edit: OrderEdit,
    clock: Clock | None = None,
    pricing: PricingProvider | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
) -> BulkResult:
    if edit.is_empty():
        raise ValidationError('Nothing to change')
    return _run_per_order(
        session_factory,
        require_selection(order_ids),
        action='edit',
        work=lambda db, order_id: edit_order(
            db, actor=actor, order_id=order_id, edit=edit, clock=clock, pricing=pricing
        ),
        max_workers=max_workers,
        timeout=timeout,
    )
