from __future__ import annotations

import unittest
from datetime import date

from support import ADMIN, CUSTOMER, CUSTOMER_USER_ID, OTHER_CUSTOMER, OTHER_VENDOR, VENDOR, VENDOR_USER_ID, make_order, vendor_delivered

from delivery_orders.errors import PermissionDenied
from delivery_orders.models import OrderStatus
from delivery_orders.services.authorization_service import (
    OrderAction,
    authorize,
    can_modify,
    counter_party_updated,
    order_permissions,
)

TODAY = date(2024, 3, 12)
YESTERDAY = date(2024, 3, 11)


class AuthorizationServiceTests(unittest.TestCase):
    def test_counter_party_updated(self) -> None:
        self.assertFalse(counter_party_updated(make_order()))
        self.assertFalse(counter_party_updated(make_order(updated_by_user_id=CUSTOMER_USER_ID)))
        self.assertTrue(counter_party_updated(make_order(updated_by_user_id=VENDOR_USER_ID)))

    def test_past_order_frozen_only_after_counter_party_update(self) -> None:
        self.assertTrue(can_modify(make_order(order_date=YESTERDAY), TODAY))
        self.assertFalse(can_modify(make_order(order_date=YESTERDAY, updated_by_user_id=VENDOR_USER_ID), TODAY))
        self.assertTrue(can_modify(make_order(order_date=TODAY, updated_by_user_id=VENDOR_USER_ID), TODAY))

    def test_owner_keeps_full_control_without_counter_party_update(self) -> None:
        orders = [
            make_order(order_date=YESTERDAY),
            make_order(order_date=date(2024, 3, 20)),
            make_order(order_date=YESTERDAY, status=OrderStatus.DELIVERED, updated_by_user_id=CUSTOMER_USER_ID),
        ]
        for order in orders:
            permissions = order_permissions(order, CUSTOMER, TODAY)
            self.assertTrue(permissions.can_toggle, order)
            self.assertTrue(permissions.can_edit, order)
            self.assertTrue(permissions.can_delete, order)
            self.assertFalse(permissions.can_dispute, order)

    def test_vendor_confirmed_delivery_leaves_owner_dispute_only(self) -> None:
        for order_date in (YESTERDAY, date(2024, 3, 20)):
            permissions = order_permissions(vendor_delivered(order_date=order_date), CUSTOMER, TODAY)
            self.assertFalse(permissions.can_toggle)
            self.assertFalse(permissions.can_delete)
            self.assertFalse(permissions.can_edit)
            self.assertTrue(permissions.can_dispute)

    def test_open_dispute_cannot_be_raised_twice(self) -> None:
        order = vendor_delivered(dispute_raised=True, dispute_reason='short')
        self.assertFalse(order_permissions(order, CUSTOMER, TODAY).can_dispute)

    def test_strangers_get_nothing(self) -> None:
        order = make_order()
        self.assertFalse(any(vars(order_permissions(order, OTHER_CUSTOMER, TODAY)).values()))
        self.assertFalse(any(vars(order_permissions(order, OTHER_VENDOR, TODAY)).values()))

    def test_vendor_permissions(self) -> None:
        pending = order_permissions(make_order(), VENDOR, TODAY)
        self.assertTrue(pending.can_toggle)
        self.assertTrue(pending.can_cancel)
        self.assertTrue(pending.can_delete)
        self.assertFalse(pending.can_edit)
        self.assertFalse(pending.can_dispute)

        disputed = order_permissions(vendor_delivered(dispute_raised=True, dispute_reason='x'), VENDOR, TODAY)
        self.assertFalse(disputed.can_toggle)
        self.assertTrue(disputed.can_resolve)

    def test_cancelled_order_is_frozen_except_for_admin_delete(self) -> None:
        order = make_order(status=OrderStatus.CANCELLED)
        self.assertFalse(any(vars(order_permissions(order, CUSTOMER, TODAY)).values()))
        self.assertFalse(any(vars(order_permissions(order, VENDOR, TODAY)).values()))
        admin = order_permissions(order, ADMIN, TODAY)
        self.assertTrue(admin.can_delete)
        self.assertFalse(admin.can_toggle)

    def test_authorize_raises_with_order_id(self) -> None:
        with self.assertRaises(PermissionDenied) as ctx:
            authorize(OrderAction.DELETE, vendor_delivered(id=42, order_date=YESTERDAY), CUSTOMER, TODAY)
        self.assertEqual(ctx.exception.entity_id, 42)
        self.assertEqual(ctx.exception.as_dict()['kind'], 'permission_denied')

    def test_authorize_passes_for_allowed_action(self) -> None:
        authorize(OrderAction.DISPUTE, vendor_delivered(order_date=YESTERDAY), CUSTOMER, TODAY)


if __name__ == '__main__':
    unittest.main()
