"""Status patches for deliveries.

A status change is written as one patch (status, ``updated_at`` and, for the
client's review decisions, ``review_notes`` and ``reviewed_at``) together with
a ``status_change`` history entry, then committed once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..core.lifecycle import REVIEW_DECISIONS, ensure_transition
from ..core.statuses import DeliveryStatus
from ..models.delivery import Delivery

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def transition_delivery(
    db: Session,
    delivery: Delivery,
    target: DeliveryStatus | str,
    *,
    notes: str | None = None,
    actor: str | None = None,
) -> Delivery:
    current = DeliveryStatus.parse(delivery.status)
    destination = DeliveryStatus.parse(target)
    ensure_transition(current, destination)
    now = _utcnow()
    delivery.status = destination.value
    delivery.updated_at = now
    if destination in REVIEW_DECISIONS:
        delivery.review_notes = notes
        delivery.reviewed_at = now
    delivery.append_history(
        {
            "type": "status_change",
            "message": f"{current.value} -> {destination.value}",
            "created_by": actor,
            "timestamp": now,
        }
    )
    db.add(delivery)
    db.commit()
    db.refresh(delivery)
    logger.info(
        "delivery.status_changed",
        extra={
            "extra_data": {
                "delivery_id": delivery.id,
                "project_id": delivery.project_id,
                "from": current.value,
                "to": destination.value,
            }
        },
    )
    return delivery


def reject_delivery(db: Session, delivery: Delivery, message: str, *, actor: str | None = None) -> Delivery:
    reason = (message or "").strip()
    if not reason:
        raise ValueError("A rejection reason is required")
    return transition_delivery(db, delivery, DeliveryStatus.CLIENT_REJECTED, notes=reason, actor=actor)


__all__ = ["reject_delivery", "transition_delivery"]
