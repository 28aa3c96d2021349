"""Closed status vocabularies shared by every page and API.

The document store holds statuses as free text. Each vocabulary below is the
only place that knows the raw values, their display labels and their badge
colours; templates go through the ``status_label``/``status_badge`` filters.
Raw values the portal does not know map to ``UNKNOWN`` instead of failing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class _StoreEnum(str, Enum):
    """String enum with a lenient parser for values read from the store."""

    @classmethod
    def parse(cls, value: Any) -> "_StoreEnum":
        if isinstance(value, cls):
            return value
        raw = (str(value) if value is not None else "").strip()
        for member in cls:
            if member.value == raw:
                return member
        lowered = raw.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls("unknown")


class BacklogStatus(_StoreEnum):
    PENDING = "Pendiente"
    IN_PROGRESS = "En progreso"
    REVIEW = "Revisión"
    CLIENT_REVIEW = "Revisión por el cliente"
    DONE = "Finalizado"
    UNKNOWN = "unknown"


# Items in these states count towards milestone progress.
COMPLETED_LIKE_BACKLOG = frozenset(
    {BacklogStatus.DONE, BacklogStatus.REVIEW, BacklogStatus.CLIENT_REVIEW}
)


class ProjectStatus(_StoreEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


class MilestoneStatus(_StoreEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


class DeliveryStatus(_StoreEnum):
    DELIVERED = "delivered"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLIENT_APPROVE = "client_approve"
    CLIENT_REJECTED = "client_rejected"
    WAITING_INSTALL = "waiting_install"
    SERVER_INSTALLED = "server_installed"
    UNKNOWN = "unknown"


# Deliveries the portal loads; ``delivered`` is still internal to the team.
VISIBLE_DELIVERY_STATUSES = frozenset(
    {
        DeliveryStatus.REVIEWING,
        DeliveryStatus.APPROVED,
        DeliveryStatus.REJECTED,
        DeliveryStatus.CLIENT_APPROVE,
        DeliveryStatus.CLIENT_REJECTED,
        DeliveryStatus.WAITING_INSTALL,
        DeliveryStatus.SERVER_INSTALLED,
    }
)


class IncidentStatus(_StoreEnum):
    OPEN = "open"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITING_DELIVERY = "waiting_delivery"
    PENDING_CLIENT = "pending_client"
    CLOSED = "closed"
    UNKNOWN = "unknown"


# Incidents a delivery is expected to resolve.
DELIVERY_RELATED_INCIDENTS = frozenset({IncidentStatus.APPROVED, IncidentStatus.WAITING_DELIVERY})


class TicketStatus(_StoreEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class InvoiceStatus(_StoreEnum):
    CONFIRMED = "confirmed"
    PAID_BY_CLIENT = "paid_by_client"
    RECEIVED_AT_BANK = "received_at_bank"
    QUALITY_CONTROL = "quality_control"
    CLIENT_VALIDATION = "client_validation"
    UNKNOWN = "unknown"


class Priority(_StoreEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class PaymentMethod(str, Enum):
    BANK = "bank"
    CARD = "card"
    DLOCAL = "dlocal"


# Keyed by vocabulary first: members of different vocabularies share raw
# values ("approved", "pending") and compare equal as strings.
LABELS: dict[type, dict[Enum, str]] = {
    BacklogStatus: {
        BacklogStatus.PENDING: "Pendiente",
        BacklogStatus.IN_PROGRESS: "En progreso",
        BacklogStatus.REVIEW: "En revisión",
        BacklogStatus.CLIENT_REVIEW: "Revisión por el cliente",
        BacklogStatus.DONE: "Finalizado",
    },
    ProjectStatus: {
        ProjectStatus.PENDING: "Pendiente",
        ProjectStatus.ACTIVE: "Activo",
        ProjectStatus.COMPLETED: "Finalizado",
    },
    MilestoneStatus: {
        MilestoneStatus.PENDING: "Pendiente",
        MilestoneStatus.COMPLETED: "Completado",
    },
    DeliveryStatus: {
        DeliveryStatus.DELIVERED: "Entregada",
        DeliveryStatus.REVIEWING: "En revisión",
        DeliveryStatus.APPROVED: "Pendiente de revisión",
        DeliveryStatus.REJECTED: "Rechazada",
        DeliveryStatus.CLIENT_APPROVE: "Aprobada por el cliente",
        DeliveryStatus.CLIENT_REJECTED: "Rechazada por el cliente",
        DeliveryStatus.WAITING_INSTALL: "Pendiente de instalación",
        DeliveryStatus.SERVER_INSTALLED: "Instalada",
    },
    IncidentStatus: {
        IncidentStatus.OPEN: "Nueva",
        IncidentStatus.APPROVED: "Aprobada",
        IncidentStatus.REJECTED: "Rechazada",
        IncidentStatus.WAITING_DELIVERY: "Esperando entrega",
        IncidentStatus.PENDING_CLIENT: "Pendiente del cliente",
        IncidentStatus.CLOSED: "Cerrada",
    },
    TicketStatus: {
        TicketStatus.OPEN: "Abierto",
        TicketStatus.IN_PROGRESS: "En proceso",
        TicketStatus.CLOSED: "Cerrado",
    },
    InvoiceStatus: {
        InvoiceStatus.CONFIRMED: "Confirmada",
        InvoiceStatus.PAID_BY_CLIENT: "Pagada por cliente",
        InvoiceStatus.RECEIVED_AT_BANK: "Recibida en banco",
        InvoiceStatus.QUALITY_CONTROL: "Control de calidad",
        InvoiceStatus.CLIENT_VALIDATION: "Validación del cliente",
    },
    Priority: {
        Priority.LOW: "Baja",
        Priority.MEDIUM: "Media",
        Priority.HIGH: "Alta",
        Priority.CRITICAL: "Crítica",
    },
    PaymentMethod: {
        PaymentMethod.BANK: "Transferencia bancaria",
        PaymentMethod.CARD: "Tarjeta de crédito",
        PaymentMethod.DLOCAL: "DLocal",
    },
}

BADGES: dict[type, dict[Enum, str]] = {
    ProjectStatus: {
        ProjectStatus.ACTIVE: "info",
        ProjectStatus.COMPLETED: "success",
    },
    DeliveryStatus: {
        DeliveryStatus.DELIVERED: "info",
        DeliveryStatus.REVIEWING: "warning",
        DeliveryStatus.APPROVED: "warning",
        DeliveryStatus.REJECTED: "danger",
        DeliveryStatus.CLIENT_APPROVE: "success",
        DeliveryStatus.CLIENT_REJECTED: "danger",
        DeliveryStatus.WAITING_INSTALL: "info",
        DeliveryStatus.SERVER_INSTALLED: "success",
    },
    IncidentStatus: {
        IncidentStatus.OPEN: "danger",
        IncidentStatus.APPROVED: "info",
        IncidentStatus.WAITING_DELIVERY: "warning",
        IncidentStatus.PENDING_CLIENT: "warning",
    },
    TicketStatus: {
        TicketStatus.OPEN: "warning",
        TicketStatus.IN_PROGRESS: "info",
    },
    InvoiceStatus: {
        InvoiceStatus.CONFIRMED: "info",
        InvoiceStatus.PAID_BY_CLIENT: "success",
        InvoiceStatus.RECEIVED_AT_BANK: "accent",
        InvoiceStatus.QUALITY_CONTROL: "warning",
        InvoiceStatus.CLIENT_VALIDATION: "warning",
    },
    Priority: {
        Priority.LOW: "info",
        Priority.MEDIUM: "warning",
        Priority.HIGH: "danger",
        Priority.CRITICAL: "accent",
    },
}


def status_label(value: Any) -> str:
    """Display label for any vocabulary member; raw text passes through."""

    if isinstance(value, Enum):
        return LABELS.get(type(value), {}).get(value, "Desconocido")
    return str(value or "")


def status_badge(value: Any) -> str:
    if isinstance(value, Enum):
        return BADGES.get(type(value), {}).get(value, "muted")
    return "muted"


__all__ = [
    "BacklogStatus",
    "COMPLETED_LIKE_BACKLOG",
    "DELIVERY_RELATED_INCIDENTS",
    "DeliveryStatus",
    "IncidentStatus",
    "InvoiceStatus",
    "MilestoneStatus",
    "PaymentMethod",
    "Priority",
    "ProjectStatus",
    "TicketStatus",
    "VISIBLE_DELIVERY_STATUSES",
    "status_badge",
    "status_label",
]
