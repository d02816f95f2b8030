from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from delivery_orders.auth import Principal, Role
from delivery_orders.models import Base, Customer, OrderStatus, Product, Vendor, VendorProduct
from delivery_orders.services.calendar_service import FixedClock
from delivery_orders.services.order_records import OrderRecord

TZ = ZoneInfo('Asia/Kolkata')

CUSTOMER_USER_ID = 100
VENDOR_USER_ID = 200
ADMIN_USER_ID = 300

CUSTOMER = Principal(id=CUSTOMER_USER_ID, role=Role.CUSTOMER, customer_id=1)
OTHER_CUSTOMER = Principal(id=101, role=Role.CUSTOMER, customer_id=2)
VENDOR = Principal(id=VENDOR_USER_ID, role=Role.VENDOR, vendor_id=10)
OTHER_VENDOR = Principal(id=201, role=Role.VENDOR, vendor_id=11)
ADMIN = Principal(id=ADMIN_USER_ID, role=Role.ADMIN)


def local(year: int, month: int, day: int, hour: int = 9, minute: int = 0) -> datetime:
    return datetime.combine(date(year, month, day), time(hour, minute), tzinfo=TZ)


def clock_at(year: int, month: int, day: int, hour: int = 9, minute: int = 0) -> FixedClock:
    return FixedClock(local(year, month, day, hour, minute))


def make_order(**overrides) -> OrderRecord:
    values = dict(
        id=1,
        customer_id=1,
        customer_user_id=CUSTOMER_USER_ID,
        vendor_id=10,
        product_id=20,
        order_date=date(2024, 3, 11),
        quantity=Decimal('2'),
        unit='litre',
        price_per_unit=Decimal('30.00'),
        total_amount=Decimal('60.00'),
        status=OrderStatus.PENDING,
        placed_by_user_id=CUSTOMER_USER_ID,
        placed_by_role=Role.CUSTOMER,
    )
    values.update(overrides)
    return OrderRecord(**values)


def vendor_delivered(**overrides) -> OrderRecord:
    values = dict(
        status=OrderStatus.DELIVERED,
        delivered_at=local(2024, 3, 11, 7),
        updated_by_user_id=VENDOR_USER_ID,
    )
    values.update(overrides)
    return make_order(**values)


def memory_session_factory() -> sessionmaker:
    engine = create_engine(
        'sqlite+pysqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def seed_catalog(session_factory: sessionmaker, *, subscribe_before: str | None = None, stock: int | None = None) -> None:
    """Customer 1 and 2, vendor 10 offering milk (20) and curd (21)."""
    with session_factory() as db:
        db.add_all(
            [
                Vendor(id=10, user_id=VENDOR_USER_ID, name='Fresh Dairy'),
                Vendor(id=11, user_id=201, name='Other Dairy'),
                Customer(id=1, user_id=CUSTOMER_USER_ID, name='Asha'),
                Customer(id=2, user_id=101, name='Ravi'),
                Product(id=20, name='Milk', category='dairy', unit='litre', subscribe_before=subscribe_before),
                Product(id=21, name='Curd', category='dairy', unit='kg', subscribe_before=subscribe_before),
            ]
        )
        db.flush()
        db.add_all(
            [
                VendorProduct(vendor_id=10, product_id=20, price_per_unit=Decimal('30.00'), stock_quantity=stock),
                VendorProduct(vendor_id=10, product_id=21, price_per_unit=Decimal('45.50'), stock_quantity=stock),
            ]
        )
        db.commit()
