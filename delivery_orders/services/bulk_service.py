from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import TypeVar

from delivery_orders.errors import OrderingError, ValidationError
from delivery_orders.logging_config import get_logger
from delivery_orders.models import OrderStatus
from delivery_orders.services.authorization_service import counter_party_updated
from delivery_orders.services.order_records import OrderRecord

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class BulkFailure:
    order_id: int
    kind: str
    message: str


@dataclass
class BulkResult:
    action: str
    succeeded: list[int] = field(default_factory=list)
    failures: list[BulkFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def first_failure(self) -> BulkFailure | None:
        return self.failures[0] if self.failures else None

    def as_dict(self) -> dict:
        return {
            'action': self.action,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'succeeded': list(self.succeeded),
            'failures': [
                {'order_id': failure.order_id, 'kind': failure.kind, 'message': failure.message}
                for failure in self.failures
            ],
        }


def require_selection(order_ids: Iterable[int]) -> list[int]:
    unique_ids = list(dict.fromkeys(order_ids))
    if not unique_ids:
        raise ValidationError('Select at least one order')
    return unique_ids


def select_all_ids(orders: Iterable[OrderRecord]) -> list[int]:
    return [order.id for order in orders if order.status == OrderStatus.PENDING and order.id is not None]


def bulk_toggle_target(orders: Sequence[OrderRecord]) -> OrderStatus:
    """
    One target for the whole selection: pending only when every selected order
    is delivered and was not confirmed by the counter-party, delivered otherwise.
    """
    if not orders:
        raise ValidationError('Select at least one order')
    all_self_delivered = all(
        order.status == OrderStatus.DELIVERED and not counter_party_updated(order) for order in orders
    )
    return OrderStatus.PENDING if all_self_delivered else OrderStatus.DELIVERED


def _report_late_outcome(action: str, order_id: int) -> Callable:
    def _done(future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            logger.info('Bulk %s for order %s finished after timing out and was applied', action, order_id)
        else:
            logger.info('Bulk %s for order %s failed after timing out: %s', action, order_id, exc)

    return _done


def run_bulk(
    order_ids: Iterable[int],
    operation: Callable[[int], T],
    *,
    action: str,
    max_workers: int = 8,
    timeout: float | None = None,
) -> BulkResult:
    """
    Apply `operation` to each order id independently.

    Every item is attempted; one failure never rolls back or cancels another.
    Returns once all outcomes are known or have timed out. A timed out item
    keeps running and its outcome is unknown when this returns; the late
    result is logged.
    """
    ids = require_selection(order_ids)
    result = BulkResult(action=action)
    workers = max(1, min(max_workers, len(ids)))

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='bulk-order')
    try:
        futures = [(order_id, executor.submit(operation, order_id)) for order_id in ids]
        for order_id, future in futures:
            try:
                future.result(timeout=timeout)
            except FutureTimeout:
                logger.warning('Bulk %s timed out for order %s', action, order_id)
                future.add_done_callback(_report_late_outcome(action, order_id))
                result.failures.append(
                    BulkFailure(
                        order_id=order_id,
                        kind='timeout',
                        message=f'No outcome after {timeout}s; the change may still be applied',
                    )
                )
            except OrderingError as exc:
                result.failures.append(BulkFailure(order_id=order_id, kind=exc.kind, message=exc.message))
            except Exception as exc:
                logger.exception('Bulk %s failed unexpectedly for order %s', action, order_id)
                result.failures.append(BulkFailure(order_id=order_id, kind='error', message=str(exc)))
            else:
                result.succeeded.append(order_id)
    finally:
        # Items still running after a timeout keep running; we just stop waiting.
        executor.shutdown(wait=False)

    logger.info(
        'Bulk %s finished: %s succeeded, %s failed',
        action,
        result.success_count,
        result.failure_count,
    )
    return result
