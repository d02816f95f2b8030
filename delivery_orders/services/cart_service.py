from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from delivery_orders.errors import InsufficientResource, NotFound
from delivery_orders.services.order_state_service import compute_total, validate_quantity


def cart_key(vendor_id: int, product_id: int) -> str:
    return f'{vendor_id}-{product_id}'


@dataclass(frozen=True)
class CartItem:
    vendor_id: int
    product_id: int
    quantity: Decimal
    unit: str
    price_per_unit: Decimal
    order_id: int | None = None

    @property
    def key(self) -> str:
        return cart_key(self.vendor_id, self.product_id)

    @property
    def line_total(self) -> Decimal:
        return compute_total(self.quantity, self.price_per_unit)


def _check_stock(product_id: int, quantity: Decimal, available: Decimal | None) -> None:
    if available is not None and quantity > available:
        raise InsufficientResource(
            f'Only {available} available for product {product_id}, requested {quantity}',
            entity_id=product_id,
        )


class Cart:
    """Client-side basket; nothing here is persisted."""

    def __init__(self) -> None:
        self._items: dict[str, CartItem] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def items(self) -> list[CartItem]:
        return list(self._items.values())

    def get(self, vendor_id: int, product_id: int) -> CartItem | None:
        return self._items.get(cart_key(vendor_id, product_id))

    def add(self, item: CartItem, *, available: Decimal | None = None) -> CartItem:
        quantity = validate_quantity(item.quantity)
        existing = self._items.get(item.key)
        if existing is not None:
            quantity = existing.quantity + quantity
        _check_stock(item.product_id, quantity, available)
        stored = replace(item, quantity=quantity)
        self._items[item.key] = stored
        return stored

    def update(self, vendor_id: int, product_id: int, quantity: Decimal, *, available: Decimal | None = None) -> CartItem:
        key = cart_key(vendor_id, product_id)
        existing = self._items.get(key)
        if existing is None:
            raise NotFound(f'Cart has no item {key}', entity_id=product_id)
        new_quantity = validate_quantity(quantity)
        _check_stock(product_id, new_quantity, available)
        stored = replace(existing, quantity=new_quantity)
        self._items[key] = stored
        return stored

    def remove(self, vendor_id: int, product_id: int) -> None:
        key = cart_key(vendor_id, product_id)
        if self._items.pop(key, None) is None:
            raise NotFound(f'Cart has no item {key}', entity_id=product_id)

    def purge_delivered(self, delivered_order_ids: Iterable[int]) -> list[CartItem]:
        delivered = set(delivered_order_ids)
        purged = [item for item in self._items.values() if item.order_id is not None and item.order_id in delivered]
        for item in purged:
            del self._items[item.key]
        return purged

    def total(self) -> Decimal:
        return sum((item.line_total for item in self._items.values()), Decimal('0'))

    def clear(self) -> None:
        self._items.clear()
