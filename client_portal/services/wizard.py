"""Delivery approval wizard as a single tagged-union state.

The wizard is ``Confirm → Billing → Install → Done``. Each step carries only
the data that exists while it is active (the OTP sub-state lives inside the
confirmation step, invoices inside billing), and every function here takes a
wizard and returns the next one. Illegal moves raise ``WizardError``. Nothing
in this module talks to the network or the store; ``services.approval`` does
that and feeds the outcomes back in.

States are frozen pydantic models so they can be stored in the session as
JSON and restored with ``ApprovalWizard.model_validate``.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Iterable, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from ..core.config import settings
from ..core.errors import WizardError
from ..core.statuses import DeliveryStatus, InvoiceStatus, PaymentMethod, status_label
from .billing import invoice_total, invoices_currency, to_decimal

CODE_LENGTH = 6
CODE_PATTERN = re.compile(r"^\d{6}$")

OPENABLE_STATUSES = frozenset({DeliveryStatus.APPROVED, DeliveryStatus.CLIENT_APPROVE})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---- OTP sub-state of the confirmation step


class OtpIdle(_Frozen):
    kind: Literal["idle"] = "idle"


class OtpSent(_Frozen):
    kind: Literal["sent"] = "sent"
    transaction_id: str
    sent_at: datetime


class OtpVerified(_Frozen):
    kind: Literal["verified"] = "verified"
    transaction_id: str


OtpState = Annotated[Union[OtpIdle, OtpSent, OtpVerified], Field(discriminator="kind")]


# ---- Steps


class BillingInvoice(_Frozen):
    """Invoice as returned by the invoice check for one delivery."""

    id: str
    number: Optional[str] = None
    total: Annotated[Decimal, BeforeValidator(to_decimal)] = Decimal("0")
    currency: Optional[str] = None
    status: Annotated[InvoiceStatus, BeforeValidator(InvoiceStatus.parse)] = InvoiceStatus.UNKNOWN
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    payment_url: Optional[str] = Field(default=None, alias="paymentUrl")


class ConfirmStep(_Frozen):
    step: Literal["confirm"] = "confirm"
    terms_accepted: bool = False
    code: str = ""
    otp: OtpState = Field(default_factory=OtpIdle)


class BillingStep(_Frozen):
    step: Literal["billing"] = "billing"
    payment_method: PaymentMethod = PaymentMethod.BANK
    invoices: tuple[BillingInvoice, ...] = ()
    loaded: bool = False
    error: Optional[str] = None


class InstallStep(_Frozen):
    step: Literal["install"] = "install"


class DoneStep(_Frozen):
    step: Literal["done"] = "done"


WizardState = Annotated[
    Union[ConfirmStep, BillingStep, InstallStep, DoneStep],
    Field(discriminator="step"),
]


class ApprovalWizard(_Frozen):
    delivery_id: str
    project_id: str
    delivery_status: DeliveryStatus
    # Set once an OTP has been accepted in this wizard; going back to the
    # confirmation step is closed from then on.
    verified: bool = False
    state: WizardState = Field(default_factory=ConfirmStep)

    @property
    def step(self) -> str:
        return self.state.step


# ---- Helpers


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _confirm(w: ApprovalWizard) -> ConfirmStep:
    if not isinstance(w.state, ConfirmStep):
        raise WizardError("Esta acción solo está disponible en el paso de confirmación")
    return w.state


def billing_step(w: ApprovalWizard) -> BillingStep:
    if not isinstance(w.state, BillingStep):
        raise WizardError("Esta acción solo está disponible en el paso de facturación")
    return w.state


def _with_state(w: ApprovalWizard, state: Any, **changes: Any) -> ApprovalWizard:
    return w.model_copy(update={"state": state, **changes})


def code_is_complete(code: str | None) -> bool:
    return bool(CODE_PATTERN.match(code or ""))


# ---- Transitions


def open_wizard(delivery: Any) -> ApprovalWizard:
    """Start a wizard for a delivery row or view (needs id, project_id, status)."""

    status = DeliveryStatus.parse(getattr(delivery, "status", None))
    if status not in OPENABLE_STATUSES:
        raise WizardError(f"Las entregas en estado {status_label(status)} no se pueden aprobar")
    return ApprovalWizard(
        delivery_id=str(delivery.id),
        project_id=str(delivery.project_id),
        delivery_status=status,
    )


def accept_terms(w: ApprovalWizard, accepted: bool) -> ApprovalWizard:
    step = _confirm(w)
    return _with_state(w, step.model_copy(update={"terms_accepted": bool(accepted)}))


def needs_otp(w: ApprovalWizard) -> bool:
    return w.delivery_status != DeliveryStatus.CLIENT_APPROVE and not w.verified


def ensure_can_send(w: ApprovalWizard) -> ConfirmStep:
    step = _confirm(w)
    if not step.terms_accepted:
        raise WizardError("Debes aceptar los términos antes de solicitar el código")
    if not needs_otp(w):
        raise WizardError("Esta entrega ya está aprobada")
    return step


def otp_sent(w: ApprovalWizard, transaction_id: str, now: datetime | None = None) -> ApprovalWizard:
    step = ensure_can_send(w)
    if not transaction_id:
        raise WizardError("No hay una verificación en curso")
    sent = OtpSent(transaction_id=transaction_id, sent_at=now or _now())
    return _with_state(w, step.model_copy(update={"otp": sent, "code": ""}))


def resend_wait(w: ApprovalWizard, now: datetime | None = None, cooldown: int | None = None) -> int:
    """Seconds left before another code may be requested (0 when allowed)."""

    if not isinstance(w.state, ConfirmStep) or not isinstance(w.state.otp, OtpSent):
        return 0
    window = settings.OTP_RESEND_SECONDS if cooldown is None else cooldown
    elapsed = ((now or _now()) - w.state.otp.sent_at).total_seconds()
    return max(0, int(window - elapsed + 0.999))


def can_resend(w: ApprovalWizard, now: datetime | None = None, cooldown: int | None = None) -> bool:
    if not isinstance(w.state, ConfirmStep) or not needs_otp(w):
        return False
    if isinstance(w.state.otp, OtpVerified):
        return False
    return resend_wait(w, now, cooldown) == 0


def enter_code(w: ApprovalWizard, code: str | None) -> ApprovalWizard:
    step = _confirm(w)
    cleaned = (code or "").strip()[:CODE_LENGTH]
    return _with_state(w, step.model_copy(update={"code": cleaned}))


def otp_verified(w: ApprovalWizard) -> ApprovalWizard:
    step = _confirm(w)
    if not isinstance(step.otp, OtpSent):
        raise WizardError("No hay ningún código pendiente de verificar")
    return _with_state(
        w,
        BillingStep(),
        verified=True,
        delivery_status=DeliveryStatus.CLIENT_APPROVE,
    )


def can_advance(w: ApprovalWizard) -> bool:
    state = w.state
    if isinstance(state, ConfirmStep):
        return state.terms_accepted and (w.delivery_status == DeliveryStatus.CLIENT_APPROVE or w.verified)
    return isinstance(state, (BillingStep, InstallStep))


def advance(w: ApprovalWizard) -> ApprovalWizard:
    if not can_advance(w):
        raise WizardError("Completa el paso actual para continuar")
    if isinstance(w.state, ConfirmStep):
        return _with_state(w, BillingStep())
    if isinstance(w.state, BillingStep):
        return _with_state(w, InstallStep())
    raise WizardError("Confirma la instalación para terminar")


def go_back(w: ApprovalWizard) -> ApprovalWizard:
    state = w.state
    if isinstance(state, ConfirmStep):
        if isinstance(state.otp, OtpSent):
            return _with_state(w, state.model_copy(update={"otp": OtpIdle(), "code": ""}))
        raise WizardError("Ya estás en el primer paso")
    if isinstance(state, BillingStep):
        if w.verified:
            raise WizardError("La entrega ya ha sido verificada")
        return _with_state(w, ConfirmStep(terms_accepted=True))
    if isinstance(state, InstallStep):
        return _with_state(w, BillingStep())
    raise WizardError("El proceso ya ha terminado")


def select_payment_method(w: ApprovalWizard, method: PaymentMethod | str) -> ApprovalWizard:
    step = billing_step(w)
    try:
        chosen = PaymentMethod(method)
    except ValueError as exc:
        raise WizardError(f"Método de pago desconocido: {method}") from exc
    return _with_state(w, step.model_copy(update={"payment_method": chosen}))


def invoices_loaded(w: ApprovalWizard, invoices: Iterable[Any]) -> ApprovalWizard:
    step = billing_step(w)
    parsed = tuple(
        invoice if isinstance(invoice, BillingInvoice) else BillingInvoice.model_validate(invoice)
        for invoice in invoices
    )
    return _with_state(w, step.model_copy(update={"invoices": parsed, "loaded": True, "error": None}))


def billing_failed(w: ApprovalWizard, message: str) -> ApprovalWizard:
    step = billing_step(w)
    return _with_state(w, step.model_copy(update={"error": message}))


def payment_link_ready(w: ApprovalWizard, invoice_id: str, url: str) -> ApprovalWizard:
    step = billing_step(w)
    if step.payment_method != PaymentMethod.CARD:
        raise WizardError("El enlace de pago solo está disponible para pagos con tarjeta")
    if not any(invoice.id == invoice_id for invoice in step.invoices):
        raise WizardError("Factura desconocida")
    updated = tuple(
        invoice.model_copy(update={"payment_url": url}) if invoice.id == invoice_id else invoice
        for invoice in step.invoices
    )
    return _with_state(w, step.model_copy(update={"invoices": updated, "error": None}))


def billing_total(w: ApprovalWizard) -> Decimal:
    return invoice_total(billing_step(w).invoices)


def billing_currency(w: ApprovalWizard, default: str | None = None) -> str:
    return invoices_currency(billing_step(w).invoices, default or settings.DEFAULT_CURRENCY)


def finish(w: ApprovalWizard) -> ApprovalWizard:
    if not isinstance(w.state, InstallStep):
        raise WizardError("La instalación solo se puede confirmar en el último paso")
    return _with_state(w, DoneStep(), delivery_status=DeliveryStatus.WAITING_INSTALL)


__all__ = [
    "ApprovalWizard",
    "BillingInvoice",
    "BillingStep",
    "billing_step",
    "ConfirmStep",
    "DoneStep",
    "InstallStep",
    "OtpIdle",
    "OtpSent",
    "OtpVerified",
    "accept_terms",
    "advance",
    "billing_currency",
    "billing_failed",
    "billing_total",
    "can_advance",
    "can_resend",
    "code_is_complete",
    "ensure_can_send",
    "enter_code",
    "finish",
    "go_back",
    "invoices_loaded",
    "needs_otp",
    "open_wizard",
    "otp_sent",
    "otp_verified",
    "payment_link_ready",
    "resend_wait",
    "select_payment_method",
]
