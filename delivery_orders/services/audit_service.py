from __future__ import annotations

from sqlalchemy.orm import Session

from delivery_orders.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    order_id: int | None = None,
    subscription_id: int | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            order_id=order_id,
            subscription_id=subscription_id,
            meta=metadata or {},
        )
    )
