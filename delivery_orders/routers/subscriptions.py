from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from delivery_orders.auth import Principal, Role, get_current_principal, require_role
from delivery_orders.db import get_db
from delivery_orders.dependencies import get_clock, get_pricing
from delivery_orders.errors import ValidationError
from delivery_orders.models import SubscriptionStatus
from delivery_orders.schemas import CreateSubscriptionRequest, GenerateRequest, PauseSubscriptionRequest
from delivery_orders.services import subscription_admin_service
from delivery_orders.services.calendar_service import Clock
from delivery_orders.services.order_records import SubscriptionRecord
from delivery_orders.services.pricing_service import PricingProvider

router = APIRouter(prefix='/subscriptions', tags=['subscriptions'])
admin_access = require_role(Role.ADMIN)


def subscription_payload(sub: SubscriptionRecord) -> dict:
    return {
        'id': sub.id,
        'customer_id': sub.customer_id,
        'vendor_id': sub.vendor_id,
        'product_id': sub.product_id,
        'frequency': sub.frequency.value,
        'start_date': sub.start_date.isoformat(),
        'original_start_date': sub.original_start_date.isoformat(),
        'end_date': sub.end_date.isoformat() if sub.end_date else None,
        'status': sub.status.value,
        'paused_from': sub.paused_from.isoformat() if sub.paused_from else None,
        'paused_until': sub.paused_until.isoformat() if sub.paused_until else None,
        'quantity': str(sub.quantity),
        'unit': sub.unit,
        'price_per_unit': str(sub.price_per_unit),
        'weekly_days': list(sub.weekly_days),
        'monthly_day': sub.monthly_day,
    }


@router.get('')
def list_subscriptions(
    status: list[SubscriptionStatus] = Query(default=[]),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    subscriptions = subscription_admin_service.list_subscriptions(db, actor=principal, statuses=status)
    return {'subscriptions': [subscription_payload(sub) for sub in subscriptions]}


@router.post('', status_code=201)
def create_subscription(
    payload: CreateSubscriptionRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    pricing: PricingProvider = Depends(get_pricing),
):
    customer_id = payload.customer_id if payload.customer_id is not None else principal.customer_id
    if customer_id is None:
        raise ValidationError('customer_id is required')
    created, report = subscription_admin_service.create_subscription(
        db,
        actor=principal,
        customer_id=customer_id,
        vendor_id=payload.vendor_id,
        product_id=payload.product_id,
        frequency=payload.frequency,
        start_date=payload.start_date,
        quantity=payload.quantity,
        end_date=payload.end_date,
        weekly_days=payload.weekly_days,
        monthly_day=payload.monthly_day,
        clock=clock,
        pricing=pricing,
    )
    db.commit()
    return {'subscription': subscription_payload(created), 'generation': report.as_dict()}


@router.post('/generate')
def generate_orders(
    payload: GenerateRequest | None = None,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = subscription_admin_service.generate_subscription_orders(
        db,
        clock=clock,
        range_end=payload.range_end if payload else None,
    )
    db.commit()
    return report.as_dict()


@router.post('/{subscription_id}/pause')
def pause_subscription(
    subscription_id: int,
    payload: PauseSubscriptionRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    sub = subscription_admin_service.pause_subscription(
        db,
        actor=principal,
        subscription_id=subscription_id,
        paused_from=payload.paused_from,
        paused_until=payload.paused_until,
        clock=clock,
    )
    db.commit()
    return subscription_payload(sub)


@router.post('/{subscription_id}/resume')
def resume_subscription(
    subscription_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    sub, report = subscription_admin_service.resume_subscription(
        db,
        actor=principal,
        subscription_id=subscription_id,
        clock=clock,
    )
    db.commit()
    return {'subscription': subscription_payload(sub), 'generation': report.as_dict()}


@router.post('/{subscription_id}/cancel')
def cancel_subscription(
    subscription_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    sub = subscription_admin_service.cancel_subscription(
        db,
        actor=principal,
        subscription_id=subscription_id,
        clock=clock,
    )
    db.commit()
    return subscription_payload(sub)
