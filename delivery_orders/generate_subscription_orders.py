from __future__ import annotations

import argparse

from delivery_orders.config import settings
from delivery_orders.db import SessionLocal
from delivery_orders.logging_config import setup_logging
from delivery_orders.services.calendar_service import parse_day
from delivery_orders.services.subscription_admin_service import GenerationReport, generate_subscription_orders


def run(*, through: str | None = None, subscription_ids: list[int] | None = None, session_factory=SessionLocal) -> GenerationReport:
    with session_factory() as db:
        report = generate_subscription_orders(
            db,
            subscription_ids=subscription_ids or None,
            range_end=parse_day(through) if through else None,
        )
        db.commit()
    return report


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Create the orders active subscriptions are missing.')
    parser.add_argument(
        '--through',
        help='Last date to generate for (YYYY-MM-DD). Defaults to the end of next month.',
    )
    parser.add_argument(
        '--subscription-id',
        type=int,
        action='append',
        dest='subscription_ids',
        help='Only process this subscription; may be repeated.',
    )
    args = parser.parse_args(argv)

    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir or None, json_files=settings.log_json)
    report = run(through=args.through, subscription_ids=args.subscription_ids)
    print(
        'Subscription order generation complete: '
        f'created={report.orders_created}, processed={report.subscriptions_processed}, errors={len(report.errors)}'
    )


if __name__ == '__main__':
    main()
