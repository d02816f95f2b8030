from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from delivery_orders.db import get_db, get_session_factory
from delivery_orders.services.calendar_service import Clock, default_clock
from delivery_orders.services.pricing_service import DatabasePricingProvider, PricingProvider


def get_clock() -> Clock:
    return default_clock()


def get_pricing(db: Session = Depends(get_db)) -> PricingProvider:
    return DatabasePricingProvider(db)


def get_bulk_session_factory() -> sessionmaker:
    return get_session_factory()
