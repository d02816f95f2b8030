from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from delivery_orders.errors import InvalidState, ValidationError
from delivery_orders.models import SubscriptionFrequency, SubscriptionStatus
from delivery_orders.services.calendar_service import clamp_day_of_month, iter_days, sunday_index
from delivery_orders.services.order_records import SubscriptionRecord


def validate_subscription(sub: SubscriptionRecord) -> None:
    if sub.quantity is None or Decimal(sub.quantity) <= 0:
        raise ValidationError('Quantity must be greater than zero', entity_id=sub.id)
    if sub.price_per_unit is None or Decimal(sub.price_per_unit) < 0:
        raise ValidationError('Unit price cannot be negative', entity_id=sub.id)
    if sub.end_date is not None and sub.end_date < sub.start_date:
        raise ValidationError('End date cannot be before start date', entity_id=sub.id)
    if sub.original_start_date > sub.start_date:
        raise ValidationError('Original start date cannot be after start date', entity_id=sub.id)
    if any(day < 0 or day > 6 for day in sub.weekly_days):
        raise ValidationError('Weekly days must be between 0 (Sunday) and 6 (Saturday)', entity_id=sub.id)
    if sub.monthly_day is not None and not 1 <= sub.monthly_day <= 31:
        raise ValidationError('Monthly day must be between 1 and 31', entity_id=sub.id)
    if sub.status == SubscriptionStatus.PAUSED:
        if sub.paused_from is None or sub.paused_until is None:
            raise ValidationError('A paused subscription needs a pause window', entity_id=sub.id)
        if sub.paused_from > sub.paused_until:
            raise ValidationError('Pause start cannot be after pause end', entity_id=sub.id)


def new_subscription(
    *,
    customer_id: int,
    customer_user_id: int,
    vendor_id: int,
    product_id: int,
    frequency: SubscriptionFrequency,
    start_date: date,
    quantity: Decimal,
    unit: str,
    price_per_unit: Decimal,
    end_date: date | None = None,
    weekly_days: Iterable[int] = (),
    monthly_day: int | None = None,
    created_by_user_id: int | None = None,
) -> SubscriptionRecord:
    sub = SubscriptionRecord(
        id=None,
        customer_id=customer_id,
        customer_user_id=customer_user_id,
        vendor_id=vendor_id,
        product_id=product_id,
        frequency=frequency,
        start_date=start_date,
        original_start_date=start_date,
        end_date=end_date,
        quantity=quantity,
        unit=unit,
        price_per_unit=price_per_unit,
        weekly_days=tuple(sorted(set(weekly_days))),
        monthly_day=monthly_day,
        created_by_user_id=created_by_user_id,
    )
    validate_subscription(sub)
    return sub


def effective_weekly_days(sub: SubscriptionRecord) -> frozenset[int]:
    if sub.weekly_days:
        return frozenset(sub.weekly_days)
    return frozenset({sunday_index(sub.start_date)})


def effective_monthly_day(sub: SubscriptionRecord) -> int:
    return sub.monthly_day or sub.start_date.day


def is_paused_on(sub: SubscriptionRecord, day: date) -> bool:
    if sub.status != SubscriptionStatus.PAUSED or sub.paused_from is None or sub.paused_until is None:
        return False
    return sub.paused_from <= day <= sub.paused_until


def _matches_frequency(sub: SubscriptionRecord, day: date, weekly_days: frozenset[int], monthly_day: int) -> bool:
    if sub.frequency == SubscriptionFrequency.DAILY:
        return True
    if sub.frequency == SubscriptionFrequency.WEEKLY:
        return sunday_index(day) in weekly_days
    if sub.frequency == SubscriptionFrequency.MONTHLY:
        return day == clamp_day_of_month(day.year, day.month, monthly_day)
    return day == sub.start_date


def _generation_bounds(sub: SubscriptionRecord, range_start: date, range_end: date) -> tuple[date, date]:
    start = max(range_start, sub.start_date)
    end = range_end
    if sub.end_date is not None:
        if sub.status == SubscriptionStatus.CANCELLED:
            # end_date holds the cancellation date; nothing from that day on.
            end = min(end, sub.end_date - timedelta(days=1))
        else:
            end = min(end, sub.end_date)
    return start, end


def expand_dates(sub: SubscriptionRecord, range_start: date, range_end: date) -> list[date]:
    """
    Dates inside [range_start, range_end] on which an order should exist.

    The result is sorted and free of duplicates; reconciling it against orders
    that already exist is the caller's job (see missing_dates).
    """
    if range_end < range_start:
        raise ValidationError('Range end cannot be before range start', entity_id=sub.id)
    start, end = _generation_bounds(sub, range_start, range_end)
    if end < start:
        return []
    if sub.status == SubscriptionStatus.CANCELLED and sub.end_date is None:
        return []

    if sub.frequency == SubscriptionFrequency.ONE_TIME:
        candidates: Iterable[date] = [sub.start_date] if start <= sub.start_date <= end else []
    else:
        candidates = iter_days(start, end)

    weekly_days = effective_weekly_days(sub)
    monthly_day = effective_monthly_day(sub)
    return [
        day
        for day in candidates
        if _matches_frequency(sub, day, weekly_days, monthly_day) and not is_paused_on(sub, day)
    ]


def plan_new_order_dates(sub: SubscriptionRecord, range_start: date, range_end: date, *, today: date) -> list[date]:
    """Expansion for the placement path, which never creates orders in the past."""
    if sub.status == SubscriptionStatus.CANCELLED:
        return []
    clipped_start = max(range_start, today)
    if range_end < clipped_start:
        return []
    return expand_dates(sub, clipped_start, range_end)


def missing_dates(desired: Iterable[date], existing: Iterable[date]) -> list[date]:
    existing_set = set(existing)
    return sorted({day for day in desired if day not in existing_set})


def pause_subscription(sub: SubscriptionRecord, paused_from: date, paused_until: date, *, today: date) -> SubscriptionRecord:
    if sub.status != SubscriptionStatus.ACTIVE:
        raise InvalidState(f'Subscription {sub.id} is {sub.status.value}; only active subscriptions can be paused', entity_id=sub.id)
    if paused_from > paused_until:
        raise ValidationError('Pause start cannot be after pause end', entity_id=sub.id)
    if paused_from < today:
        raise ValidationError('Pause window cannot start in the past', entity_id=sub.id)
    paused = replace(sub, status=SubscriptionStatus.PAUSED, paused_from=paused_from, paused_until=paused_until)
    validate_subscription(paused)
    return paused


def resume_subscription(sub: SubscriptionRecord, *, today: date) -> SubscriptionRecord:
    if sub.status != SubscriptionStatus.PAUSED:
        raise InvalidState(f'Subscription {sub.id} is {sub.status.value}; only paused subscriptions can be resumed', entity_id=sub.id)
    resume_date = max(today, sub.start_date)
    if sub.end_date is not None and sub.end_date < resume_date:
        raise InvalidState(f'Subscription {sub.id} ended on {sub.end_date.isoformat()}', entity_id=sub.id)
    return replace(
        sub,
        status=SubscriptionStatus.ACTIVE,
        start_date=resume_date,
        paused_from=None,
        paused_until=None,
    )


def cancel_subscription(sub: SubscriptionRecord, *, today: date) -> SubscriptionRecord:
    if sub.status == SubscriptionStatus.CANCELLED:
        raise InvalidState(f'Subscription {sub.id} is already cancelled', entity_id=sub.id)
    cancel_on = today if sub.end_date is None else min(sub.end_date, today)
    return replace(
        sub,
        status=SubscriptionStatus.CANCELLED,
        end_date=max(cancel_on, sub.start_date),
        paused_from=None,
        paused_until=None,
    )
