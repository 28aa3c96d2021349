"""Delivery status lifecycle.

``delivered → reviewing → approved → client_approve | client_rejected →
waiting_install → server_installed`` with ``rejected`` reachable while the
team is still reviewing. Only the client-facing edges (``approved`` onwards)
are driven from the portal; the rest happen in the backend and are listed so
that the portal never writes a status the backend would not.
"""

from __future__ import annotations

from .errors import InvalidTransition
from .statuses import DeliveryStatus, status_label

ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.DELIVERED: frozenset({DeliveryStatus.REVIEWING, DeliveryStatus.REJECTED}),
    DeliveryStatus.REVIEWING: frozenset({DeliveryStatus.APPROVED, DeliveryStatus.REJECTED}),
    DeliveryStatus.APPROVED: frozenset({DeliveryStatus.CLIENT_APPROVE, DeliveryStatus.CLIENT_REJECTED}),
    DeliveryStatus.CLIENT_APPROVE: frozenset({DeliveryStatus.WAITING_INSTALL}),
    DeliveryStatus.WAITING_INSTALL: frozenset({DeliveryStatus.SERVER_INSTALLED}),
    DeliveryStatus.REJECTED: frozenset(),
    DeliveryStatus.CLIENT_REJECTED: frozenset(),
    DeliveryStatus.SERVER_INSTALLED: frozenset(),
}

# Statuses that record a client review decision (notes + reviewed_at).
REVIEW_DECISIONS = frozenset({DeliveryStatus.CLIENT_APPROVE, DeliveryStatus.CLIENT_REJECTED})

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"


def can_transition(current: DeliveryStatus | str, target: DeliveryStatus | str) -> bool:
    source = DeliveryStatus.parse(current)
    destination = DeliveryStatus.parse(target)
    return destination in ALLOWED_TRANSITIONS.get(source, frozenset())


def ensure_transition(current: DeliveryStatus | str, target: DeliveryStatus | str) -> None:
    if not can_transition(current, target):
        source = DeliveryStatus.parse(current)
        destination = DeliveryStatus.parse(target)
        raise InvalidTransition(
            f"La entrega no puede pasar de {status_label(source)} a {status_label(destination)}",
            details={"from": source.value, "to": destination.value},
        )


def client_actions(status: DeliveryStatus | str) -> tuple[str, ...]:
    """Actions offered to the client for a delivery in ``status``."""

    current = DeliveryStatus.parse(status)
    if current == DeliveryStatus.APPROVED:
        return (ACTION_APPROVE, ACTION_REJECT)
    if current == DeliveryStatus.CLIENT_APPROVE:
        # The wizard resumes at billing once the OTP step is done.
        return (ACTION_APPROVE,)
    return ()


__all__ = [
    "ACTION_APPROVE",
    "ACTION_REJECT",
    "ALLOWED_TRANSITIONS",
    "REVIEW_DECISIONS",
    "can_transition",
    "client_actions",
    "ensure_transition",
]
