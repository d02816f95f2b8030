from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_orders.errors import NotFound
from delivery_orders.models import Product, Vendor, VendorProduct
from delivery_orders.services.cutoff_service import CutoffPolicy


@dataclass(frozen=True)
class ProductOffer:
    vendor_id: int
    product_id: int
    unit: str
    price_per_unit: Decimal
    subscribe_before: str | None = None
    stock_quantity: Decimal | None = None

    def cutoff_policy(self) -> CutoffPolicy:
        return CutoffPolicy.from_setting(self.subscribe_before)


class PricingProvider(Protocol):
    def resolve_offer(self, *, vendor_id: int, product_id: int) -> ProductOffer: ...


class DatabasePricingProvider:
    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_offer(self, *, vendor_id: int, product_id: int) -> ProductOffer:
        row = self.db.execute(
            select(VendorProduct, Product)
            .join(Product, Product.id == VendorProduct.product_id)
            .join(Vendor, Vendor.id == VendorProduct.vendor_id)
            .where(
                VendorProduct.vendor_id == vendor_id,
                VendorProduct.product_id == product_id,
                VendorProduct.active.is_(True),
                Product.active.is_(True),
                Vendor.active.is_(True),
            )
        ).one_or_none()
        if not row:
            raise NotFound(f'Vendor {vendor_id} does not offer product {product_id}', entity_id=product_id)
        vendor_product, product = row
        return ProductOffer(
            vendor_id=vendor_id,
            product_id=product_id,
            unit=product.unit,
            price_per_unit=Decimal(vendor_product.price_per_unit),
            subscribe_before=product.subscribe_before,
            stock_quantity=(
                Decimal(vendor_product.stock_quantity) if vendor_product.stock_quantity is not None else None
            ),
        )


class StaticPricingProvider:
    """In-memory offers keyed by (vendor_id, product_id)."""

    def __init__(self, offers: list[ProductOffer] | None = None) -> None:
        self.offers = {(offer.vendor_id, offer.product_id): offer for offer in offers or []}

    def add(self, offer: ProductOffer) -> None:
        self.offers[(offer.vendor_id, offer.product_id)] = offer

    def resolve_offer(self, *, vendor_id: int, product_id: int) -> ProductOffer:
        offer = self.offers.get((vendor_id, product_id))
        if offer is None:
            raise NotFound(f'Vendor {vendor_id} does not offer product {product_id}', entity_id=product_id)
        return offer
