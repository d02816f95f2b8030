from __future__ import annotations

import threading
import unittest
from unittest.mock import patch

from support import CUSTOMER_USER_ID, make_order, vendor_delivered

from delivery_orders.errors import PermissionDenied, ValidationError
from delivery_orders.models import OrderStatus
from delivery_orders.services import bulk_service
from delivery_orders.services.bulk_service import bulk_toggle_target, require_selection, run_bulk, select_all_ids


class BulkServiceTests(unittest.TestCase):
    def test_every_item_attempted_despite_failures(self) -> None:
        attempted: list[int] = []
        lock = threading.Lock()

        def operation(order_id: int) -> None:
            with lock:
                attempted.append(order_id)
            if order_id == 2:
                raise PermissionDenied('nope', entity_id=order_id)
            if order_id == 4:
                raise RuntimeError('database went away')

        result = run_bulk([1, 2, 3, 4], operation, action='toggle', max_workers=4)

        self.assertEqual(sorted(attempted), [1, 2, 3, 4])
        self.assertEqual(sorted(result.succeeded), [1, 3])
        self.assertEqual(result.success_count, 2)
        self.assertEqual(result.failure_count, 2)
        self.assertFalse(result.ok)
        kinds = {failure.order_id: failure.kind for failure in result.failures}
        self.assertEqual(kinds, {2: 'permission_denied', 4: 'error'})
        self.assertEqual(result.first_failure.order_id, 2)

    def test_duplicates_collapsed_and_empty_rejected(self) -> None:
        self.assertEqual(require_selection([3, 1, 3, 2, 1]), [3, 1, 2])
        with self.assertRaises(ValidationError):
            require_selection([])
        with self.assertRaises(ValidationError):
            run_bulk([], lambda order_id: None, action='delete')

    def test_timeout_recorded_without_cancelling_siblings(self) -> None:
        release = threading.Event()
        finished: list[int] = []

        def operation(order_id: int) -> None:
            if order_id == 1:
                release.wait(5)
            finished.append(order_id)

        late = threading.Event()

        def record_late(message, *args) -> None:
            if 'after timing out' in message:
                late.set()

        with patch.object(bulk_service.logger, 'info', side_effect=record_late) as info_mock:
            result = run_bulk([1, 2], operation, action='toggle', max_workers=2, timeout=0.05)
            release.set()
            self.assertTrue(late.wait(5))

        self.assertEqual(result.succeeded, [2])
        self.assertEqual(result.failures[0].kind, 'timeout')
        self.assertIn('may still be applied', result.failures[0].message)
        self.assertIn(2, finished)
        self.assertIn(1, finished)
        late_calls = [call for call in info_mock.call_args_list if 'after timing out' in call.args[0]]
        self.assertEqual(late_calls[0].args[1:], ('toggle', 1))

    def test_as_dict(self) -> None:
        result = run_bulk([5], lambda order_id: None, action='delete', max_workers=1)
        self.assertEqual(
            result.as_dict(),
            {'action': 'delete', 'success_count': 1, 'failure_count': 0, 'succeeded': [5], 'failures': []},
        )

    def test_toggle_target_pending_only_when_all_self_delivered(self) -> None:
        self_delivered = make_order(status=OrderStatus.DELIVERED, updated_by_user_id=CUSTOMER_USER_ID)
        self.assertEqual(bulk_toggle_target([self_delivered, self_delivered]), OrderStatus.PENDING)
        self.assertEqual(bulk_toggle_target([self_delivered, make_order()]), OrderStatus.DELIVERED)
        self.assertEqual(bulk_toggle_target([self_delivered, vendor_delivered()]), OrderStatus.DELIVERED)
        self.assertEqual(bulk_toggle_target([make_order(), make_order(id=2)]), OrderStatus.DELIVERED)

    def test_select_all_takes_pending_only(self) -> None:
        orders = [
            make_order(id=1),
            vendor_delivered(id=2),
            make_order(id=3, status=OrderStatus.CANCELLED),
            make_order(id=4),
        ]
        self.assertEqual(select_all_ids(orders), [1, 4])


if __name__ == '__main__':
    unittest.main()
