from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from delivery_orders.auth import Principal, Role, get_current_principal
from delivery_orders.db import get_db
from delivery_orders.dependencies import get_bulk_session_factory, get_clock, get_pricing
from delivery_orders.errors import ValidationError
from delivery_orders.models import OrderStatus
from delivery_orders.schemas import (
    BulkEditRequest,
    BulkRequest,
    DisputeRequest,
    EditOrderRequest,
    PlaceOrderRequest,
    ResolveDisputeRequest,
    StatusRequest,
    ToggleRequest,
)
from delivery_orders.services import order_service
from delivery_orders.services.bulk_service import select_all_ids
from delivery_orders.services.calendar_service import Clock
from delivery_orders.services.order_records import OrderEdit, OrderRecord
from delivery_orders.services.order_repository import OrderQuery
from delivery_orders.services.pricing_service import PricingProvider
from delivery_orders.services.reporting_service import sort_orders

router = APIRouter(prefix='/orders', tags=['orders'])


def order_payload(order: OrderRecord) -> dict:
    return {
        'id': order.id,
        'customer_id': order.customer_id,
        'vendor_id': order.vendor_id,
        'product_id': order.product_id,
        'subscription_id': order.subscription_id,
        'order_date': order.order_date.isoformat(),
        'quantity': str(order.quantity),
        'unit': order.unit,
        'price_per_unit': str(order.price_per_unit),
        'total_amount': str(order.total_amount),
        'status': order.status.value,
        'delivered_at': order.delivered_at.isoformat() if order.delivered_at else None,
        'dispute_raised': order.dispute_raised,
        'dispute_reason': order.dispute_reason,
        'placed_by_user_id': order.placed_by_user_id,
        'placed_by_role': order.placed_by_role.value if order.placed_by_role else None,
        'updated_by_user_id': order.updated_by_user_id,
    }


def scoped_query(
    principal: Principal,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    vendor_id: int | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
    statuses: tuple[OrderStatus, ...] = (),
) -> OrderQuery:
    """Customers only ever see their own orders and vendors only their own deliveries."""
    if principal.role == Role.CUSTOMER:
        customer_id = principal.customer_id
    elif principal.role == Role.VENDOR:
        vendor_id = principal.vendor_id
    return OrderQuery(
        start_date=start_date,
        end_date=end_date,
        vendor_id=vendor_id,
        product_id=product_id,
        customer_id=customer_id,
        statuses=statuses,
    )


def _customer_for(principal: Principal, requested: int | None) -> int:
    customer_id = requested if requested is not None else principal.customer_id
    if customer_id is None:
        raise ValidationError('customer_id is required')
    return customer_id


@router.get('')
def list_orders(
    start_date: date | None = None,
    end_date: date | None = None,
    vendor_id: int | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
    status: list[OrderStatus] = Query(default=[]),
    sort: str = 'date',
    descending: bool = False,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    query = scoped_query(
        principal,
        start_date=start_date,
        end_date=end_date,
        vendor_id=vendor_id,
        product_id=product_id,
        customer_id=customer_id,
        statuses=tuple(status),
    )
    orders = order_service.list_orders(db, query)
    vendor_names, product_names = order_service.display_names(db, orders)
    orders = sort_orders(orders, sort, descending=descending, vendor_names=vendor_names, product_names=product_names)
    return {'orders': [order_payload(order) for order in orders]}


@router.get('/select-all')
def select_all(
    start_date: date | None = None,
    end_date: date | None = None,
    vendor_id: int | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    query = scoped_query(
        principal,
        start_date=start_date,
        end_date=end_date,
        vendor_id=vendor_id,
        product_id=product_id,
        customer_id=customer_id,
    )
    return {'order_ids': select_all_ids(order_service.list_orders(db, query))}


@router.post('', status_code=201)
def place_orders(
    payload: PlaceOrderRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    pricing: PricingProvider = Depends(get_pricing),
):
    created = order_service.place_orders(
        db,
        actor=principal,
        customer_id=_customer_for(principal, payload.customer_id),
        vendor_id=payload.vendor_id,
        product_id=payload.product_id,
        order_dates=payload.order_dates,
        quantity=payload.quantity,
        clock=clock,
        pricing=pricing,
    )
    db.commit()
    return {'orders': [order_payload(order) for order in created]}


@router.post('/bulk/toggle')
def bulk_toggle(
    payload: BulkRequest,
    principal: Principal = Depends(get_current_principal),
    session_factory: sessionmaker = Depends(get_bulk_session_factory),
    clock: Clock = Depends(get_clock),
):
    target, result = order_service.bulk_toggle(
        session_factory,
        actor=principal,
        order_ids=payload.order_ids,
        delivered_at=payload.delivered_at,
        clock=clock,
    )
    return {'target_status': target.value, **result.as_dict()}


@router.post('/bulk/delete')
def bulk_delete(
    payload: BulkRequest,
    principal: Principal = Depends(get_current_principal),
    session_factory: sessionmaker = Depends(get_bulk_session_factory),
    clock: Clock = Depends(get_clock),
):
    result = order_service.bulk_delete(session_factory, actor=principal, order_ids=payload.order_ids, clock=clock)
    return result.as_dict()


@router.post('/bulk/edit')
def bulk_edit(
    payload: BulkEditRequest,
    principal: Principal = Depends(get_current_principal),
    session_factory: sessionmaker = Depends(get_bulk_session_factory),
    clock: Clock = Depends(get_clock),
):
    edit = OrderEdit(quantity=payload.quantity, product_id=payload.product_id, order_date=payload.order_date)
    result = order_service.bulk_edit(
        session_factory,
        actor=principal,
        order_ids=payload.order_ids,
        edit=edit,
        clock=clock,
    )
    return result.as_dict()


@router.get('/{order_id}/permissions')
def order_permissions(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    permissions = order_service.get_permissions(db, actor=principal, order_id=order_id, clock=clock)
    return {
        'order_id': order_id,
        'can_edit': permissions.can_edit,
        'can_toggle': permissions.can_toggle,
        'can_delete': permissions.can_delete,
        'can_cancel': permissions.can_cancel,
        'can_dispute': permissions.can_dispute,
        'can_resolve': permissions.can_resolve,
    }


@router.post('/{order_id}/toggle')
def toggle_status(
    order_id: int,
    payload: ToggleRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order = order_service.toggle_order_status(
        db,
        actor=principal,
        order_id=order_id,
        delivered_at=payload.delivered_at if payload else None,
        clock=clock,
    )
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/status')
def set_status(
    order_id: int,
    payload: StatusRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order = order_service.set_order_status(
        db,
        actor=principal,
        order_id=order_id,
        target=payload.status,
        delivered_at=payload.delivered_at,
        clock=clock,
    )
    db.commit()
    return order_payload(order)


@router.patch('/{order_id}')
def edit_order(
    order_id: int,
    payload: EditOrderRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    pricing: PricingProvider = Depends(get_pricing),
):
    edit = OrderEdit(quantity=payload.quantity, product_id=payload.product_id, order_date=payload.order_date)
    order = order_service.edit_order(db, actor=principal, order_id=order_id, edit=edit, clock=clock, pricing=pricing)
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/cancel')
def cancel_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order = order_service.cancel_order(db, actor=principal, order_id=order_id, clock=clock)
    db.commit()
    return order_payload(order)


@router.delete('/{order_id}', status_code=204)
def delete_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order_service.delete_order(db, actor=principal, order_id=order_id, clock=clock)
    db.commit()


@router.post('/{order_id}/dispute')
def raise_dispute(
    order_id: int,
    payload: DisputeRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order = order_service.raise_dispute(db, actor=principal, order_id=order_id, reason=payload.reason, clock=clock)
    db.commit()
    return order_payload(order)


@router.post('/{order_id}/resolve')
def resolve_dispute(
    order_id: int,
    payload: ResolveDisputeRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    order = order_service.resolve_dispute(
        db,
        actor=principal,
        order_id=order_id,
        resolution=payload.resolution,
        clock=clock,
    )
    db.commit()
    return order_payload(order)
