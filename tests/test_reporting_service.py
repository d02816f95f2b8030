from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from support import make_order, vendor_delivered

from delivery_orders.errors import ValidationError
from delivery_orders.models import OrderStatus
from delivery_orders.services.calendar_service import month_window
from delivery_orders.services.reporting_service import (
    OrderFilters,
    aggregate,
    customer_bill_summaries,
    round_for_display,
    sort_orders,
)

TODAY = date(2024, 3, 12)


def sample_orders():
    return [
        make_order(id=1, order_date=date(2024, 3, 10), total_amount=Decimal('60.40')),
        vendor_delivered(id=2, order_date=date(2024, 3, 11), total_amount=Decimal('30.25')),
        vendor_delivered(
            id=3,
            order_date=date(2024, 3, 11),
            total_amount=Decimal('45.50'),
            dispute_raised=True,
            dispute_reason='sour',
        ),
        make_order(id=4, order_date=date(2024, 3, 12), total_amount=Decimal('19.99'), product_id=21),
        make_order(id=5, order_date=date(2024, 3, 15), total_amount=Decimal('100.00'), status=OrderStatus.CANCELLED),
        make_order(id=6, order_date=date(2024, 3, 20), total_amount=Decimal('10.10'), vendor_id=11),
    ]


class ReportingServiceTests(unittest.TestCase):
    def test_partitions(self) -> None:
        stats = aggregate(sample_orders(), OrderFilters(), today=TODAY)
        self.assertEqual(stats.total.count, 5)
        self.assertEqual(stats.total.amount, Decimal('166.24'))
        self.assertEqual(stats.total.display_amount, Decimal('166'))
        self.assertEqual(stats.future.count, 2)
        self.assertEqual(stats.delivered.count, 1)
        self.assertEqual(stats.delivered.amount, Decimal('30.25'))
        self.assertEqual(stats.disputed.count, 1)
        self.assertEqual(stats.pending.count, 3)
        self.assertEqual(stats.pending.amount, Decimal('90.49'))
        self.assertEqual(stats.forecast_amount, Decimal('90'))

    def test_filters_apply_before_partitioning(self) -> None:
        filters = OrderFilters(start_date=date(2024, 3, 11), end_date=date(2024, 3, 31), vendor_id=10)
        stats = aggregate(sample_orders(), filters, today=TODAY)
        self.assertEqual(stats.total.count, 3)
        by_product = aggregate(sample_orders(), OrderFilters(product_id=21), today=TODAY)
        self.assertEqual(by_product.total.count, 1)

    def test_display_rounding_half_up(self) -> None:
        self.assertEqual(round_for_display(Decimal('10.5')), Decimal('11'))
        self.assertEqual(round_for_display(Decimal('10.49')), Decimal('10'))
        self.assertEqual(stats_dict_amount(), '166')

    def test_sort_is_stable_in_both_directions(self) -> None:
        orders = sample_orders()
        ascending = sort_orders(orders, 'date')
        self.assertEqual([order.id for order in ascending], [1, 2, 3, 4, 5, 6])
        descending = sort_orders(orders, 'date', descending=True)
        self.assertEqual([order.id for order in descending], [6, 5, 4, 2, 3, 1])

    def test_sort_by_names_and_amount(self) -> None:
        orders = sample_orders()
        by_vendor = sort_orders(orders, 'vendor', vendor_names={10: 'Zed Dairy', 11: 'Amul'})
        self.assertEqual(by_vendor[0].id, 6)
        by_amount = sort_orders(orders, 'amount', descending=True)
        self.assertEqual(by_amount[0].id, 5)

    def test_unknown_sort_key(self) -> None:
        with self.assertRaises(ValidationError):
            sort_orders(sample_orders(), 'colour')

    def test_customer_bills_for_month(self) -> None:
        start, end = month_window(2024, 3)
        orders = sample_orders() + [make_order(id=7, customer_id=2, total_amount=Decimal('500.00'))]
        bills = customer_bill_summaries(orders, OrderFilters(start_date=start, end_date=end, vendor_id=10))
        self.assertEqual([bill.customer_id for bill in bills], [2, 1])
        bill = bills[1]
        self.assertEqual(bill.total_orders, 4)
        self.assertEqual(bill.delivered_orders, 2)
        self.assertEqual(bill.paid_amount, Decimal('75.75'))
        self.assertEqual(bill.pending_amount, Decimal('80.39'))
        self.assertEqual(bill.total_amount, Decimal('156.14'))


def stats_dict_amount() -> str:
    return aggregate(sample_orders(), OrderFilters(), today=TODAY).as_dict()['total']['amount']


if __name__ == '__main__':
    unittest.main()
