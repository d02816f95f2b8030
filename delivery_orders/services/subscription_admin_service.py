from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_orders.auth import Principal, Role
from delivery_orders.config import settings
from delivery_orders.errors import OrderingError, PermissionDenied, ValidationError
from delivery_orders.logging_config import get_logger
from delivery_orders.models import Customer, SubscriptionFrequency, SubscriptionStatus
from delivery_orders.services import subscription_service
from delivery_orders.services.calendar_service import Clock, default_clock, horizon_end, today_for
from delivery_orders.services.cutoff_service import orderable_dates
from delivery_orders.services.notification_service import OrderEvent, publish_order_events
from delivery_orders.services.order_records import OrderDraft, SubscriptionRecord
from delivery_orders.services.order_repository import SqlOrderRepository, SqlSubscriptionRepository
from delivery_orders.services.order_state_service import build_order
from delivery_orders.services.pricing_service import DatabasePricingProvider, PricingProvider

logger = get_logger(__name__)

GENERATED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED)


@dataclass(frozen=True)
class GenerationError:
    subscription_id: int | None
    kind: str
    message: str


@dataclass
class GenerationReport:
    range_start: date
    range_end: date
    orders_created: int = 0
    subscriptions_processed: int = 0
    errors: list[GenerationError] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'range_start': self.range_start.isoformat(),
            'range_end': self.range_end.isoformat(),
            'orders_created': self.orders_created,
            'subscriptions_processed': self.subscriptions_processed,
            'errors': [
                {'subscription_id': error.subscription_id, 'kind': error.kind, 'message': error.message}
                for error in self.errors
            ],
        }


def _ensure_can_manage(actor: Principal, *, customer_id: int, vendor_id: int) -> None:
    if actor.is_admin:
        return
    if actor.role == Role.CUSTOMER and actor.customer_id == customer_id:
        return
    if actor.role == Role.VENDOR and actor.vendor_id == vendor_id:
        return
    raise PermissionDenied('Not allowed to manage this subscription')


def _generation_actor(sub: SubscriptionRecord) -> Principal:
    """Generated orders are attributed to whoever set the subscription up."""
    created_by = sub.created_by_user_id or sub.customer_user_id
    role = Role.CUSTOMER if created_by == sub.customer_user_id else Role.VENDOR
    return Principal(id=created_by, role=role, customer_id=sub.customer_id, vendor_id=sub.vendor_id)


def list_subscriptions(
    db: Session,
    *,
    actor: Principal,
    statuses: Iterable[SubscriptionStatus] = (),
) -> list[SubscriptionRecord]:
    customer_id = actor.customer_id if actor.role == Role.CUSTOMER else None
    subscriptions = SqlSubscriptionRepository(db).find_subscriptions(statuses=statuses, customer_id=customer_id)
    if actor.role == Role.VENDOR:
        subscriptions = [sub for sub in subscriptions if sub.vendor_id == actor.vendor_id]
    return subscriptions


def materialize_subscription(
    db: Session,
    sub: SubscriptionRecord,
    *,
    range_start: date,
    range_end: date,
    now: datetime,
    pricing: PricingProvider | None = None,
) -> int:
    """
    Create the orders `sub` is missing inside the range; returns how many were created.

    Dates whose cutoff has already passed for the product are left out, the
    same as on the interactive placement path.
    """
    planned = subscription_service.plan_new_order_dates(sub, range_start, range_end, today=today_for(now))
    if not planned:
        return 0
    offer = (pricing or DatabasePricingProvider(db)).resolve_offer(vendor_id=sub.vendor_id, product_id=sub.product_id)
    desired = orderable_dates(now, planned, offer.cutoff_policy())
    if not desired:
        return 0

    orders = SqlOrderRepository(db)
    existing = orders.existing_order_dates(
        customer_id=sub.customer_id,
        vendor_id=sub.vendor_id,
        product_id=sub.product_id,
        dates=desired,
        subscription_id=sub.id,
    )
    actor = _generation_actor(sub)
    drafts = [
        build_order(
            OrderDraft(
                customer_id=sub.customer_id,
                customer_user_id=sub.customer_user_id,
                vendor_id=sub.vendor_id,
                product_id=sub.product_id,
                order_date=order_date,
                quantity=sub.quantity,
                subscription_id=sub.id,
            ),
            actor,
            unit=sub.unit,
            price_per_unit=sub.price_per_unit,
            precision=settings.money_precision,
        )
        for order_date in subscription_service.missing_dates(desired, existing)
    ]
    for draft in drafts:
        orders.create_order(draft)
    return len(drafts)


def generate_subscription_orders(
    db: Session,
    *,
    clock: Clock | None = None,
    subscription_ids: Iterable[int] | None = None,
    range_end: date | None = None,
    pricing: PricingProvider | None = None,
) -> GenerationReport:
    """
    Materialize orders for active and paused subscriptions from today through
    the configured horizon.

    Safe to run repeatedly: dates that already have an order for the same
    customer, vendor and product, or for the same subscription, are skipped.
    Each subscription runs inside its own savepoint, so a failing one is rolled
    back, recorded in the report, and does not stop the others.
    """
    now = (clock or default_clock()).now()
    today = today_for(now)
    end = range_end or horizon_end(today, settings.generation_horizon_months)
    report = GenerationReport(range_start=today, range_end=end)

    subscriptions = SqlSubscriptionRepository(db).find_subscriptions(statuses=GENERATED_STATUSES)
    if subscription_ids is not None:
        wanted = set(subscription_ids)
        subscriptions = [sub for sub in subscriptions if sub.id in wanted]

    for sub in subscriptions:
        try:
            with db.begin_nested():
                created = materialize_subscription(
                    db, sub, range_start=today, range_end=end, now=now, pricing=pricing
                )
        except OrderingError as exc:
            logger.warning('Generation failed for subscription %s: %s', sub.id, exc.message)
            report.errors.append(GenerationError(subscription_id=sub.id, kind=exc.kind, message=exc.message))
            continue
        except Exception as exc:
            logger.exception('Generation failed unexpectedly for subscription %s', sub.id)
            report.errors.append(GenerationError(subscription_id=sub.id, kind='error', message=str(exc)))
            continue
        report.orders_created += created
        report.subscriptions_processed += 1

    logger.info(
        'Generated %s order(s) for %s subscription(s) through %s with %s error(s)',
        report.orders_created,
        report.subscriptions_processed,
        end.isoformat(),
        len(report.errors),
    )
    return report


def create_subscription(
    db: Session,
    *,
    actor: Principal,
    customer_id: int,
    vendor_id: int,
    product_id: int,
    frequency: SubscriptionFrequency,
    start_date: date,
    quantity: Decimal,
    end_date: date | None = None,
    weekly_days: Iterable[int] = (),
    monthly_day: int | None = None,
    clock: Clock | None = None,
    pricing: PricingProvider | None = None,
) -> tuple[SubscriptionRecord, GenerationReport]:
    _ensure_can_manage(actor, customer_id=customer_id, vendor_id=vendor_id)
    clock = clock or default_clock()
    today = today_for(clock.now())
    if start_date < today:
        raise ValidationError('Subscription cannot start in the past')

    customer_user_id = db.execute(
        select(Customer.user_id).where(Customer.id == customer_id, Customer.active.is_(True))
    ).scalar_one_or_none()
    if customer_user_id is None:
        raise ValidationError(f'Customer {customer_id} is not active', entity_id=customer_id)

    offer = (pricing or DatabasePricingProvider(db)).resolve_offer(vendor_id=vendor_id, product_id=product_id)
    record = subscription_service.new_subscription(
        customer_id=customer_id,
        customer_user_id=customer_user_id,
        vendor_id=vendor_id,
        product_id=product_id,
        frequency=frequency,
        start_date=start_date,
        quantity=quantity,
        unit=offer.unit,
        price_per_unit=offer.price_per_unit,
        end_date=end_date,
        weekly_days=weekly_days,
        monthly_day=monthly_day,
        created_by_user_id=actor.id,
    )
    created = SqlSubscriptionRepository(db).create_subscription(record)
    publish_order_events(
        db,
        [
            OrderEvent(
                action='SUBSCRIPTION_CREATED',
                actor_user_id=actor.id,
                subscription_id=created.id,
                detail={'frequency': frequency.value, 'start_date': start_date.isoformat()},
            )
        ],
    )
    report = generate_subscription_orders(db, clock=clock, subscription_ids=[created.id], pricing=pricing)
    return created, report


def _transition(
    db: Session,
    *,
    actor: Principal,
    subscription_id: int,
    action: str,
    clock: Clock | None,
    change,
) -> SubscriptionRecord:
    repo = SqlSubscriptionRepository(db)
    sub = repo.get_subscription(subscription_id)
    _ensure_can_manage(actor, customer_id=sub.customer_id, vendor_id=sub.vendor_id)
    today = today_for((clock or default_clock()).now())
    updated = repo.update_subscription(change(sub, today))
    publish_order_events(
        db,
        [
            OrderEvent(
                action=action,
                actor_user_id=actor.id,
                subscription_id=updated.id,
                detail={'status': updated.status.value, 'start_date': updated.start_date.isoformat()},
            )
        ],
    )
    return updated


def pause_subscription(
    db: Session,
    *,
    actor: Principal,
    subscription_id: int,
    paused_from: date,
    paused_until: date,
    clock: Clock | None = None,
) -> SubscriptionRecord:
    return _transition(
        db,
        actor=actor,
        subscription_id=subscription_id,
        action='SUBSCRIPTION_PAUSED',
        clock=clock,
        change=lambda sub, today: subscription_service.pause_subscription(
            sub, paused_from, paused_until, today=today
        ),
    )


def resume_subscription(
    db: Session,
    *,
    actor: Principal,
    subscription_id: int,
    clock: Clock | None = None,
) -> tuple[SubscriptionRecord, GenerationReport]:
    clock = clock or default_clock()
    resumed = _transition(
        db,
        actor=actor,
        subscription_id=subscription_id,
        action='SUBSCRIPTION_RESUMED',
        clock=clock,
        change=lambda sub, today: subscription_service.resume_subscription(sub, today=today),
    )
    report = generate_subscription_orders(db, clock=clock, subscription_ids=[resumed.id])
    return resumed, report


def cancel_subscription(
    db: Session,
    *,
    actor: Principal,
    subscription_id: int,
    clock: Clock | None = None,
) -> SubscriptionRecord:
    return _transition(
        db,
        actor=actor,
        subscription_id=subscription_id,
        action='SUBSCRIPTION_CANCELLED',
        clock=clock,
        change=lambda sub, today: subscription_service.cancel_subscription(sub, today=today),
    )
