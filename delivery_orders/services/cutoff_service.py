from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from delivery_orders.errors import ValidationError
from delivery_orders.services.calendar_service import at_time, today_for

_HHMM_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')


@dataclass(frozen=True)
class CutoffPolicy:
    subscribe_before: time | None = None

    @classmethod
    def from_setting(cls, raw: str | None) -> CutoffPolicy:
        return cls(subscribe_before=parse_subscribe_before(raw))


def parse_subscribe_before(raw: str | None) -> time | None:
    if raw is None or raw.strip() == '':
        return None
    match = _HHMM_RE.match(raw.strip())
    if not match:
        raise ValidationError(f'Invalid subscribe-before time: {raw!r}')
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f'Invalid subscribe-before time: {raw!r}')
    return time(hour, minute)


def cutoff_instant(order_date: date, policy: CutoffPolicy, tz) -> datetime | None:
    if policy.subscribe_before is None:
        return None
    return at_time(order_date - timedelta(days=1), policy.subscribe_before, tz)


def is_orderable(now: datetime, order_date: date, policy: CutoffPolicy) -> bool:
    if policy.subscribe_before is None:
        return order_date >= today_for(now)
    return now <= cutoff_instant(order_date, policy, now.tzinfo)


def earliest_orderable_date(now: datetime, policy: CutoffPolicy) -> date:
    today = today_for(now)
    if policy.subscribe_before is None:
        return today
    tomorrow = today + timedelta(days=1)
    if is_orderable(now, tomorrow, policy):
        return tomorrow
    return tomorrow + timedelta(days=1)


def default_order_date(now: datetime, policy: CutoffPolicy) -> date:
    # Suggested date only; placement still checks is_orderable.
    today = today_for(now)
    if policy.subscribe_before is None or now.time() < policy.subscribe_before:
        return today
    return today + timedelta(days=1)


def orderable_dates(now: datetime, candidates, policy: CutoffPolicy) -> list[date]:
    return [day for day in candidates if is_orderable(now, day, policy)]
