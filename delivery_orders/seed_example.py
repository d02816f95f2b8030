from decimal import Decimal

from sqlalchemy import select

from delivery_orders.db import SessionLocal, engine
from delivery_orders.models import Base, Customer, Product, Vendor, VendorProduct


def seed(session_factory=SessionLocal, bind=engine) -> None:
    Base.metadata.create_all(bind)
    with session_factory() as db:
        vendor = db.execute(select(Vendor).where(Vendor.name == 'Sunrise Dairy')).scalar_one_or_none()
        if not vendor:
            vendor = Vendor(name='Sunrise Dairy', user_id=2001, active=True)
            db.add(vendor)
            db.flush()

        catalog = [
            ('Toned Milk', 'dairy', 'litre', '18:00', Decimal('27.00')),
            ('Curd', 'dairy', 'kg', '18:00', Decimal('60.00')),
            ('Morning Newspaper', 'newspaper', 'copy', '21:00', Decimal('6.50')),
        ]
        for name, category, unit, subscribe_before, price in catalog:
            product = db.execute(select(Product).where(Product.name == name)).scalar_one_or_none()
            if not product:
                product = Product(name=name, category=category, unit=unit, subscribe_before=subscribe_before, active=True)
                db.add(product)
                db.flush()
            offer = db.execute(
                select(VendorProduct).where(
                    VendorProduct.vendor_id == vendor.id,
                    VendorProduct.product_id == product.id,
                )
            ).scalar_one_or_none()
            if not offer:
                db.add(VendorProduct(vendor_id=vendor.id, product_id=product.id, price_per_unit=price, active=True))

        customer = db.execute(select(Customer).where(Customer.user_id == 1001)).scalar_one_or_none()
        if not customer:
            db.add(Customer(name='Demo Customer', user_id=1001, active=True))

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
