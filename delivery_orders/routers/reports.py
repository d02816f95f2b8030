from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from delivery_orders.auth import Principal, Role, get_current_principal
from delivery_orders.config import settings
from delivery_orders.db import get_db
from delivery_orders.dependencies import get_clock, get_pricing
from delivery_orders.errors import PermissionDenied, ValidationError
from delivery_orders.routers.orders import scoped_query
from delivery_orders.services import order_service
from delivery_orders.services.calendar_service import Clock, month_window, today_for
from delivery_orders.services.cutoff_service import cutoff_instant, default_order_date, earliest_orderable_date
from delivery_orders.services.pricing_service import PricingProvider
from delivery_orders.services.reporting_service import OrderFilters, aggregate, customer_bill_summaries

router = APIRouter(prefix='/reports', tags=['reports'])


@router.get('/stats')
def order_stats(
    start_date: date | None = None,
    end_date: date | None = None,
    vendor_id: int | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    query = scoped_query(
        principal,
        start_date=start_date,
        end_date=end_date,
        vendor_id=vendor_id,
        product_id=product_id,
        customer_id=customer_id,
    )
    stats = aggregate(
        order_service.list_orders(db, query),
        OrderFilters(
            start_date=query.start_date,
            end_date=query.end_date,
            vendor_id=query.vendor_id,
            product_id=query.product_id,
            customer_id=query.customer_id,
        ),
        today=today_for(clock.now()),
        precision=settings.display_precision,
    )
    return {**stats.as_dict(), 'forecast_amount': str(stats.forecast_amount)}


@router.get('/bills')
def customer_bills(
    year: int,
    month: int,
    vendor_id: int | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if principal.role == Role.CUSTOMER:
        raise PermissionDenied('Bill summaries are only available to vendors')
    if not 1 <= month <= 12:
        raise ValidationError('Month must be between 1 and 12')
    start, end = month_window(year, month)
    query = scoped_query(principal, start_date=start, end_date=end, vendor_id=vendor_id)
    bills = customer_bill_summaries(order_service.list_orders(db, query))
    return {
        'start_date': start.isoformat(),
        'end_date': end.isoformat(),
        'bills': [
            {
                'customer_id': bill.customer_id,
                'total_orders': bill.total_orders,
                'delivered_orders': bill.delivered_orders,
                'pending_orders': bill.pending_orders,
                'total_amount': str(bill.total_amount),
                'paid_amount': str(bill.paid_amount),
                'pending_amount': str(bill.pending_amount),
            }
            for bill in bills
        ],
    }


@router.get('/cutoff')
def cutoff_info(
    vendor_id: int,
    product_id: int,
    order_date: date | None = None,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    pricing: PricingProvider = Depends(get_pricing),
):
    now = clock.now()
    offer = pricing.resolve_offer(vendor_id=vendor_id, product_id=product_id)
    policy = offer.cutoff_policy()
    target = order_date or default_order_date(now, policy)
    closes_at = cutoff_instant(target, policy, now.tzinfo)
    return {
        'subscribe_before': offer.subscribe_before,
        'default_order_date': default_order_date(now, policy).isoformat(),
        'earliest_orderable_date': earliest_orderable_date(now, policy).isoformat(),
        'order_date': target.isoformat(),
        'closes_at': closes_at.isoformat() if closes_at else None,
    }
