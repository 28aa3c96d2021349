"""Remote side of the approval wizard.

Each coroutine takes the current wizard, performs one remote call and returns
the next wizard together with the notices to show. Remote failures never
raise out of here: they come back as notices (send/verify) or as the billing
step's inline error (invoices, payment links), and the user retries by hand.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.errors import CallableError, WizardError
from ..core.statuses import DELIVERY_RELATED_INCIDENTS, DeliveryStatus, IncidentStatus, PaymentMethod
from ..crud import deliveries as delivery_store
from ..crud import projects as project_store
from ..models.delivery import Delivery
from ..schemas.notice import Notice
from . import wizard as wz
from .callables import FunctionsClient

logger = logging.getLogger(__name__)

MSG_NO_PHONE = "No hay un teléfono registrado para enviar el código"
MSG_SEND_FAILED = "Error al enviar el código"
MSG_START_FAILED = "Error al iniciar la verificación"
MSG_NO_TRANSACTION = "No hay un código de verificación activo"
MSG_CODE_FORMAT = "El código debe tener 6 dígitos"
MSG_CODE_INVALID = "Código de verificación inválido"
MSG_VERIFY_FAILED = "Error al verificar el código"
MSG_INVOICES_FAILED = "Error al verificar las facturas"
MSG_LINK_FAILED = "Error al generar el enlace de pago"
MSG_REJECT_REASON = "Indica el motivo del rechazo"

Outcome = tuple[wz.ApprovalWizard, list[Notice]]


def _log_failure(event: str, w: wz.ApprovalWizard, error: str) -> None:
    logger.warning(
        event,
        extra={"extra_data": {"delivery_id": w.delivery_id, "project_id": w.project_id, "error": error}},
    )


async def send_code(
    w: wz.ApprovalWizard,
    functions: FunctionsClient,
    phone: str | None,
    *,
    now: datetime | None = None,
) -> Outcome:
    wz.ensure_can_send(w)
    if not phone:
        return w, [Notice.error(MSG_NO_PHONE)]
    if not wz.can_resend(w, now):
        wait = wz.resend_wait(w, now)
        return w, [Notice(level="info", title="Espera", message=f"Podrás reenviar el código en {wait} s")]

    try:
        result = await functions.start_verification(phone)
    except CallableError as exc:
        _log_failure("approval.send_failed", w, exc.message)
        return w, [Notice.error(MSG_START_FAILED)]
    if not result.success or not result.transaction_id:
        _log_failure("approval.send_rejected", w, result.error or "no transaction")
        return w, [Notice.error(result.error or MSG_SEND_FAILED)]

    return wz.otp_sent(w, result.transaction_id, now), [
        Notice.success("Código enviado", f"Se ha enviado un código de verificación al número {phone}")
    ]


async def verify_code(
    db: Session,
    w: wz.ApprovalWizard,
    functions: FunctionsClient,
    phone: str | None,
    *,
    code: str | None = None,
    actor: str | None = None,
) -> Outcome:
    if code is not None:
        w = wz.enter_code(w, code)
    step = w.state
    if not isinstance(step, wz.ConfirmStep) or not isinstance(step.otp, wz.OtpSent):
        return w, [Notice.error(MSG_NO_TRANSACTION)]
    if not wz.code_is_complete(step.code):
        return w, [Notice.error(MSG_CODE_FORMAT)]

    delivery = project_store.get_delivery(db, w.project_id, w.delivery_id)
    if delivery is None:
        raise WizardError("Entrega no encontrada")
    tasks = project_store.milestone_backlog(db, w.project_id, delivery.milestone_id)
    incidents = [
        incident
        for incident in project_store.list_incidents(db, w.project_id)
        if IncidentStatus.parse(incident.status) in DELIVERY_RELATED_INCIDENTS
    ]

    try:
        result = await functions.approve_delivery(
            project_id=w.project_id,
            delivery_id=w.delivery_id,
            phone=phone or "",
            code=step.code,
            transaction_id=step.otp.transaction_id,
            task_ids=[task.id for task in tasks],
            incident_ids=[incident.id for incident in incidents],
        )
    except CallableError as exc:
        _log_failure("approval.verify_failed", w, exc.message)
        return w, [Notice.error(MSG_VERIFY_FAILED)]
    if not result.success:
        _log_failure("approval.verify_rejected", w, result.error or "invalid code")
        return w, [Notice.error(MSG_CODE_INVALID)]

    # The backend usually flips the status itself; patch it when it has not.
    db.refresh(delivery)
    if DeliveryStatus.parse(delivery.status) == DeliveryStatus.APPROVED:
        delivery_store.transition_delivery(db, delivery, DeliveryStatus.CLIENT_APPROVE, actor=actor)

    logger.info(
        "approval.verified",
        extra={"extra_data": {"delivery_id": w.delivery_id, "project_id": w.project_id}},
    )
    return wz.otp_verified(w), [Notice.success("Entrega aprobada", "El código se ha verificado correctamente")]


async def load_invoices(w: wz.ApprovalWizard, functions: FunctionsClient) -> wz.ApprovalWizard:
    wz.billing_step(w)
    try:
        result = await functions.check_delivery_invoices(w.project_id, w.delivery_id)
    except CallableError as exc:
        _log_failure("approval.invoices_failed", w, exc.message)
        return wz.billing_failed(w, MSG_INVOICES_FAILED)
    try:
        return wz.invoices_loaded(w, result.invoices)
    except ValueError as exc:
        _log_failure("approval.invoices_invalid", w, str(exc))
        return wz.billing_failed(w, MSG_INVOICES_FAILED)


async def request_payment_link(
    w: wz.ApprovalWizard,
    functions: FunctionsClient,
    invoice_id: str,
) -> tuple[wz.ApprovalWizard, str | None]:
    """Returns the next wizard and the URL to open (``None`` on failure)."""

    step = wz.billing_step(w)
    if step.payment_method != PaymentMethod.CARD:
        raise WizardError("El enlace de pago solo está disponible para pagos con tarjeta")
    if not any(invoice.id == invoice_id for invoice in step.invoices):
        raise WizardError("Factura desconocida")
    try:
        result = await functions.create_payment_link(invoice_id)
    except CallableError as exc:
        _log_failure("approval.payment_link_failed", w, exc.message)
        return wz.billing_failed(w, MSG_LINK_FAILED), None
    return wz.payment_link_ready(w, invoice_id, result.payment_url), result.payment_url


def confirm_install(db: Session, w: wz.ApprovalWizard, *, actor: str | None = None) -> Outcome:
    finished = wz.finish(w)
    delivery = project_store.get_delivery(db, w.project_id, w.delivery_id)
    if delivery is None:
        raise WizardError("Entrega no encontrada")
    if DeliveryStatus.parse(delivery.status) != DeliveryStatus.WAITING_INSTALL:
        delivery_store.transition_delivery(db, delivery, DeliveryStatus.WAITING_INSTALL, actor=actor)
    return finished, [Notice.success("Instalación solicitada", "Comenzará el proceso de instalación")]


def reject_delivery(db: Session, delivery: Delivery, message: str, *, actor: str | None = None) -> Notice:
    if not (message or "").strip():
        raise WizardError(MSG_REJECT_REASON)
    delivery_store.reject_delivery(db, delivery, message, actor=actor)
    return Notice.success("Entrega rechazada", "Se ha registrado el motivo del rechazo")


__all__ = [
    "confirm_install",
    "load_invoices",
    "reject_delivery",
    "request_payment_link",
    "send_code",
    "verify_code",
]
