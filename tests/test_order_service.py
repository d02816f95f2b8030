from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from support import (
    ADMIN,
    CUSTOMER,
    CUSTOMER_USER_ID,
    OTHER_CUSTOMER,
    OTHER_VENDOR,
    VENDOR,
    VENDOR_USER_ID,
    clock_at,
    local,
    memory_session_factory,
    seed_catalog,
)

from delivery_orders.errors import InsufficientResource, InvalidState, NotFound, PermissionDenied, ValidationError
from delivery_orders.models import AuditLog, Order, OrderStatus
from delivery_orders.services import order_service
from delivery_orders.services.order_records import OrderEdit
from delivery_orders.services.order_repository import OrderQuery
from delivery_orders.services.order_state_service import is_consistent


class OrderServiceTestCase(unittest.TestCase):
    subscribe_before: str | None = None
    stock: int | None = None

    def setUp(self) -> None:
        self.factory = memory_session_factory()
        seed_catalog(self.factory, subscribe_before=self.subscribe_before, stock=self.stock)
        self.clock = clock_at(2024, 3, 10, 9)

    def place(self, *, actor=CUSTOMER, customer_id=1, order_dates=(date(2024, 3, 11),), quantity='2', product_id=20):
        with self.factory() as db:
            created = order_service.place_orders(
                db,
                actor=actor,
                customer_id=customer_id,
                vendor_id=10,
                product_id=product_id,
                order_dates=order_dates,
                quantity=Decimal(quantity),
                clock=self.clock,
            )
            db.commit()
        return created

    def get(self, order_id: int):
        with self.factory() as db:
            return order_service.list_orders(db, OrderQuery(ids=(order_id,)))[0]

    def count_orders(self) -> int:
        with self.factory() as db:
            return db.execute(select(func.count(Order.id))).scalar_one()


class PlaceOrderTests(OrderServiceTestCase):
    def test_place_order_prices_from_catalog(self) -> None:
        [order] = self.place()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.price_per_unit, Decimal('30.00'))
        self.assertEqual(order.total_amount, Decimal('60.00'))
        self.assertEqual(order.customer_user_id, CUSTOMER_USER_ID)
        self.assertEqual(order.placed_by_user_id, CUSTOMER_USER_ID)
        self.assertTrue(is_consistent(order))

    def test_multi_date_placement(self) -> None:
        created = self.place(order_dates=[date(2024, 3, 13), date(2024, 3, 11), date(2024, 3, 13)])
        self.assertEqual([order.order_date for order in created], [date(2024, 3, 11), date(2024, 3, 13)])
        with self.factory() as db:
            actions = db.execute(select(AuditLog.action)).scalars().all()
        self.assertEqual(actions, ['ORDER_PLACED', 'ORDER_PLACED'])

    def test_past_date_rejects_whole_selection(self) -> None:
        with self.assertRaises(ValidationError):
            self.place(order_dates=[date(2024, 3, 12), date(2024, 3, 9)])
        self.assertEqual(self.count_orders(), 0)

    def test_vendor_places_for_own_customers_only(self) -> None:
        [order] = self.place(actor=VENDOR)
        self.assertEqual(order.placed_by_user_id, VENDOR_USER_ID)
        with self.assertRaises(PermissionDenied):
            self.place(actor=OTHER_VENDOR)
        with self.assertRaises(PermissionDenied):
            self.place(actor=OTHER_CUSTOMER)

    def test_unknown_offer(self) -> None:
        with self.assertRaises(NotFound):
            self.place(product_id=99)


class CutoffPlacementTests(OrderServiceTestCase):
    subscribe_before = '18:00'

    def test_tomorrow_closes_after_cutoff(self) -> None:
        self.clock = clock_at(2024, 3, 10, 17)
        self.place(order_dates=[date(2024, 3, 11)])
        self.clock = clock_at(2024, 3, 10, 18, 30)
        with self.assertRaises(ValidationError):
            self.place(order_dates=[date(2024, 3, 11)])
        self.place(order_dates=[date(2024, 3, 12)])


class StockPlacementTests(OrderServiceTestCase):
    stock = 5

    def test_insufficient_stock(self) -> None:
        with self.assertRaises(InsufficientResource):
            self.place(quantity='6')
        self.assertEqual(len(self.place(quantity='5')), 1)


class OrderLifecycleTests(OrderServiceTestCase):
    def test_vendor_delivery_then_customer_dispute(self) -> None:
        [order] = self.place()
        self.clock = clock_at(2024, 3, 12, 9)
        with self.factory() as db:
            delivered = order_service.toggle_order_status(db, actor=VENDOR, order_id=order.id, clock=self.clock)
            db.commit()
        self.assertEqual(delivered.status, OrderStatus.DELIVERED)
        self.assertEqual(delivered.delivered_at, local(2024, 3, 12, 9))
        self.assertEqual(delivered.updated_by_user_id, VENDOR_USER_ID)

        with self.factory() as db:
            with self.assertRaises(PermissionDenied):
                order_service.delete_order(db, actor=CUSTOMER, order_id=order.id, clock=self.clock)
            permissions = order_service.get_permissions(db, actor=CUSTOMER, order_id=order.id, clock=self.clock)
        self.assertTrue(permissions.can_dispute)
        self.assertFalse(permissions.can_toggle)

        with self.factory() as db:
            disputed = order_service.raise_dispute(
                db, actor=CUSTOMER, order_id=order.id, reason='wrong product', clock=self.clock
            )
            db.commit()
        self.assertTrue(disputed.dispute_raised)
        self.assertEqual(self.get(order.id).dispute_reason, 'wrong product')

        with self.factory() as db:
            resolved = order_service.resolve_dispute(
                db, actor=VENDOR, order_id=order.id, resolution=OrderStatus.PENDING, clock=self.clock
            )
            db.commit()
        self.assertEqual(resolved.status, OrderStatus.PENDING)
        self.assertIsNone(resolved.delivered_at)
        self.assertFalse(self.get(order.id).dispute_raised)

    def test_dispute_on_pending_is_rejected(self) -> None:
        [order] = self.place()
        with self.factory() as db:
            with self.assertRaises(InvalidState):
                order_service.raise_dispute(db, actor=CUSTOMER, order_id=order.id, reason='x', clock=self.clock)

    def test_cancel_then_delete(self) -> None:
        [order] = self.place()
        with self.factory() as db:
            cancelled = order_service.cancel_order(db, actor=CUSTOMER, order_id=order.id, clock=self.clock)
            db.commit()
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        with self.factory() as db:
            with self.assertRaises(PermissionDenied):
                order_service.delete_order(db, actor=CUSTOMER, order_id=order.id, clock=self.clock)
            order_service.delete_order(db, actor=ADMIN, order_id=order.id, clock=self.clock)
            db.commit()
        self.assertEqual(self.count_orders(), 0)

    def test_edit_reprices_with_current_offer(self) -> None:
        [order] = self.place(quantity='2')
        with self.factory() as db:
            edited = order_service.edit_order(
                db,
                actor=CUSTOMER,
                order_id=order.id,
                edit=OrderEdit(product_id=21, quantity=Decimal('3'), order_date=date(2024, 3, 14)),
                clock=self.clock,
            )
            db.commit()
        self.assertEqual(edited.unit, 'kg')
        self.assertEqual(edited.total_amount, Decimal('136.50'))
        self.assertEqual(self.get(order.id).order_date, date(2024, 3, 14))

    def test_edit_to_past_date_rejected(self) -> None:
        [order] = self.place()
        with self.factory() as db:
            with self.assertRaises(ValidationError):
                order_service.edit_order(
                    db,
                    actor=CUSTOMER,
                    order_id=order.id,
                    edit=OrderEdit(order_date=date(2024, 3, 1)),
                    clock=self.clock,
                )

    def test_missing_order(self) -> None:
        with self.factory() as db:
            with self.assertRaises(NotFound):
                order_service.toggle_order_status(db, actor=ADMIN, order_id=404, clock=self.clock)


class BulkWorkflowTests(OrderServiceTestCase):
    def test_bulk_toggle_delivers_every_pending_order(self) -> None:
        created = self.place(order_dates=[date(2024, 3, 11), date(2024, 3, 12), date(2024, 3, 13)])
        target, result = order_service.bulk_toggle(
            self.factory,
            actor=VENDOR,
            order_ids=[order.id for order in created],
            clock=self.clock,
            max_workers=1,
        )
        self.assertEqual(target, OrderStatus.DELIVERED)
        self.assertEqual(result.success_count, 3)
        self.assertTrue(result.ok)
        for order in created:
            stored = self.get(order.id)
            self.assertEqual(stored.status, OrderStatus.DELIVERED)
            self.assertEqual(stored.delivered_at, self.clock.now())

    def test_one_failure_does_not_block_the_rest(self) -> None:
        [mine] = self.place()
        [theirs] = self.place(actor=OTHER_CUSTOMER, customer_id=2)
        target, result = order_service.bulk_toggle(
            self.factory,
            actor=CUSTOMER,
            order_ids=[theirs.id, mine.id],
            clock=self.clock,
            max_workers=1,
        )
        self.assertEqual(target, OrderStatus.DELIVERED)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failure_count, 1)
        self.assertEqual(result.first_failure.order_id, theirs.id)
        self.assertEqual(result.first_failure.kind, 'permission_denied')
        self.assertEqual(self.get(mine.id).status, OrderStatus.DELIVERED)
        self.assertEqual(self.get(theirs.id).status, OrderStatus.PENDING)

    def test_bulk_toggle_back_to_pending_when_all_self_delivered(self) -> None:
        created = self.place(order_dates=[date(2024, 3, 11), date(2024, 3, 12)])
        ids = [order.id for order in created]
        order_service.bulk_toggle(self.factory, actor=CUSTOMER, order_ids=ids, clock=self.clock, max_workers=1)
        target, result = order_service.bulk_toggle(
            self.factory, actor=CUSTOMER, order_ids=ids, clock=self.clock, max_workers=1
        )
        self.assertEqual(target, OrderStatus.PENDING)
        self.assertEqual(result.success_count, 2)
        self.assertIsNone(self.get(ids[0]).delivered_at)

    def test_bulk_delete_and_edit(self) -> None:
        created = self.place(order_dates=[date(2024, 3, 11), date(2024, 3, 12)])
        ids = [order.id for order in created]
        edited = order_service.bulk_edit(
            self.factory,
            actor=CUSTOMER,
            order_ids=ids,
            edit=OrderEdit(quantity=Decimal('4')),
            clock=self.clock,
            max_workers=1,
        )
        self.assertEqual(edited.success_count, 2)
        self.assertEqual(self.get(ids[1]).total_amount, Decimal('120.00'))

        deleted = order_service.bulk_delete(
            self.factory, actor=CUSTOMER, order_ids=ids + [999], clock=self.clock, max_workers=1
        )
        self.assertEqual(deleted.success_count, 2)
        self.assertEqual(deleted.failures[0].kind, 'not_found')
        self.assertEqual(self.count_orders(), 0)

    def test_empty_selection(self) -> None:
        with self.assertRaises(ValidationError):
            order_service.bulk_delete(self.factory, actor=CUSTOMER, order_ids=[], clock=self.clock)


if __name__ == '__main__':
    unittest.main()
