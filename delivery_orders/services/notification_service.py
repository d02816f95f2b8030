from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from delivery_orders.logging_config import get_logger
from delivery_orders.services.audit_service import log_audit

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderEvent:
    action: str
    actor_user_id: int | None
    order_id: int | None = None
    subscription_id: int | None = None
    detail: dict = field(default_factory=dict)


def publish_order_events(db: Session, events: list[OrderEvent]) -> None:
    """Record outcomes for whoever renders notifications; delivery itself happens elsewhere."""
    for event in events:
        log_audit(
            db,
            actor_user_id=event.actor_user_id,
            action=event.action,
            order_id=event.order_id,
            subscription_id=event.subscription_id,
            metadata=event.detail,
        )
        logger.info(
            '%s order=%s subscription=%s actor=%s',
            event.action,
            event.order_id,
            event.subscription_id,
            event.actor_user_id,
        )
