from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from delivery_orders.auth import Principal, Role
from delivery_orders.errors import PermissionDenied
from delivery_orders.models import OrderStatus
from delivery_orders.services.order_records import OrderRecord


class OrderAction(str, Enum):
    EDIT = 'edit'
    TOGGLE = 'toggle'
    DELETE = 'delete'
    CANCEL = 'cancel'
    DISPUTE = 'dispute'
    RESOLVE = 'resolve'


@dataclass(frozen=True)
class OrderPermissions:
    can_edit: bool = False
    can_toggle: bool = False
    can_delete: bool = False
    can_cancel: bool = False
    can_dispute: bool = False
    can_resolve: bool = False

    def allows(self, action: OrderAction) -> bool:
        return getattr(self, f'can_{action.value}')


NO_PERMISSIONS = OrderPermissions()


def counter_party_updated(order: OrderRecord) -> bool:
    """True when someone other than the owning customer made the last status change."""
    return order.updated_by_user_id is not None and order.updated_by_user_id != order.customer_user_id


def is_past(order: OrderRecord, today: date) -> bool:
    return order.order_date < today


def can_modify(order: OrderRecord, today: date) -> bool:
    return not is_past(order, today) or not counter_party_updated(order)


def is_owner(order: OrderRecord, actor: Principal) -> bool:
    if actor.role != Role.CUSTOMER:
        return False
    if actor.customer_id is not None:
        return actor.customer_id == order.customer_id
    return actor.id == order.customer_user_id


def is_order_vendor(order: OrderRecord, actor: Principal) -> bool:
    return actor.role == Role.VENDOR and actor.vendor_id is not None and actor.vendor_id == order.vendor_id


def _owner_permissions(order: OrderRecord, actor: Principal, today: date) -> OrderPermissions:
    delivered = order.status == OrderStatus.DELIVERED
    foreign_update = counter_party_updated(order)
    modifiable = can_modify(order, today)
    # A counter-party confirmed delivery leaves the customer with dispute only.
    locked = delivered and foreign_update
    placed_by_actor = order.placed_by_user_id is None or order.placed_by_user_id == actor.id
    return OrderPermissions(
        can_edit=modifiable and not locked,
        can_toggle=modifiable and not locked,
        can_delete=modifiable and not locked and (not delivered or placed_by_actor),
        can_cancel=modifiable and order.status == OrderStatus.PENDING,
        can_dispute=delivered and foreign_update and not order.dispute_raised,
        can_resolve=False,
    )


def _vendor_permissions(order: OrderRecord) -> OrderPermissions:
    pending = order.status == OrderStatus.PENDING
    return OrderPermissions(
        can_edit=False,
        can_toggle=not order.dispute_raised,
        can_delete=pending,
        can_cancel=pending,
        can_dispute=False,
        can_resolve=order.dispute_raised,
    )


def _admin_permissions(order: OrderRecord) -> OrderPermissions:
    pending = order.status == OrderStatus.PENDING
    return OrderPermissions(
        can_edit=pending,
        can_toggle=not order.dispute_raised,
        can_delete=True,
        can_cancel=pending,
        can_dispute=False,
        can_resolve=order.dispute_raised,
    )


def order_permissions(order: OrderRecord, actor: Principal, today: date) -> OrderPermissions:
    if order.status == OrderStatus.CANCELLED:
        return OrderPermissions(can_delete=actor.is_admin)
    if actor.is_admin:
        return _admin_permissions(order)
    if is_owner(order, actor):
        return _owner_permissions(order, actor, today)
    if is_order_vendor(order, actor):
        return _vendor_permissions(order)
    return NO_PERMISSIONS


def authorize(action: OrderAction, order: OrderRecord, actor: Principal, today: date) -> None:
    if not order_permissions(order, actor, today).allows(action):
        raise PermissionDenied(f'Not allowed to {action.value} order {order.id}', entity_id=order.id)
