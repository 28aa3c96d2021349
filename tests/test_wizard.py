"""Tests for the delivery approval wizard state machine."""

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from client_portal.core.errors import WizardError
from client_portal.core.statuses import DeliveryStatus, PaymentMethod
from client_portal.services import wizard as wz

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _delivery(status="approved"):
    return SimpleNamespace(id="d1", project_id="p1", status=status)


def _sent(w=None):
    w = w or wz.accept_terms(wz.open_wizard(_delivery()), True)
    return wz.otp_sent(w, "tx-1", T0)


def _billing(invoices=()):
    w = wz.otp_verified(wz.enter_code(_sent(), "123456"))
    return wz.invoices_loaded(w, invoices)


def test_open_wizard_only_for_reviewable_deliveries():
    w = wz.open_wizard(_delivery("approved"))

    assert w.step == "confirm"
    assert w.delivery_status == DeliveryStatus.APPROVED
    assert wz.needs_otp(w)
    with pytest.raises(WizardError):
        wz.open_wizard(_delivery("reviewing"))
    with pytest.raises(WizardError):
        wz.open_wizard(_delivery("waiting_install"))


def test_code_cannot_be_sent_before_terms():
    w = wz.open_wizard(_delivery())

    with pytest.raises(WizardError):
        wz.ensure_can_send(w)
    assert not wz.can_advance(w)


def test_resend_cooldown():
    w = _sent()

    assert isinstance(w.state.otp, wz.OtpSent)
    assert wz.resend_wait(w, T0 + timedelta(seconds=10)) == 49
    assert not wz.can_resend(w, T0 + timedelta(seconds=58))
    assert wz.can_resend(w, T0 + timedelta(seconds=59))


def test_enter_code_keeps_six_characters():
    w = wz.enter_code(_sent(), " 1234567 ")

    assert w.state.code == "123456"
    assert wz.code_is_complete(w.state.code)
    assert not wz.code_is_complete("12a456")
    assert not wz.code_is_complete("12345")


def test_verified_wizard_moves_to_billing_and_locks_confirm_step():
    w = wz.otp_verified(wz.enter_code(_sent(), "123456"))

    assert w.step == "billing"
    assert w.verified
    assert w.delivery_status == DeliveryStatus.CLIENT_APPROVE
    assert not wz.needs_otp(w)
    with pytest.raises(WizardError):
        wz.go_back(w)


def test_back_from_sent_code_returns_to_idle():
    w = wz.go_back(wz.enter_code(_sent(), "12"))

    assert isinstance(w.state.otp, wz.OtpIdle)
    assert w.state.code == ""
    assert w.state.terms_accepted


def test_already_approved_delivery_skips_otp():
    w = wz.open_wizard(_delivery("client_approve"))

    assert not wz.needs_otp(w)
    assert not wz.can_advance(w)
    w = wz.accept_terms(w, True)
    assert wz.can_advance(w)
    with pytest.raises(WizardError):
        wz.ensure_can_send(w)

    w = wz.advance(w)
    assert w.step == "billing"
    assert not w.verified
    w = wz.go_back(w)
    assert w.step == "confirm"


def test_billing_totals_and_payment_method():
    w = _billing(
        [
            {"id": "f1", "number": "F-1", "total": "120.50", "currency": "EUR", "dueDate": "2024-06-01"},
            {"id": "f2", "total": 79.5},
        ]
    )

    assert w.state.loaded
    assert w.state.payment_method == PaymentMethod.BANK
    assert w.state.invoices[0].due_date == "2024-06-01"
    assert wz.billing_total(w) == Decimal("200.00")
    assert wz.billing_currency(w) == "EUR"
    with pytest.raises(WizardError):
        wz.select_payment_method(w, "cash")
    w = wz.select_payment_method(w, "card")
    assert w.state.payment_method == PaymentMethod.CARD


def test_payment_link_needs_card_and_known_invoice():
    w = _billing([{"id": "f1", "total": "10"}])

    with pytest.raises(WizardError):
        wz.payment_link_ready(w, "f1", "https://pay.example.com/f1")
    w = wz.select_payment_method(w, PaymentMethod.CARD)
    with pytest.raises(WizardError):
        wz.payment_link_ready(w, "nope", "https://pay.example.com/x")

    w = wz.payment_link_ready(w, "f1", "https://pay.example.com/f1")
    assert w.state.invoices[0].payment_url == "https://pay.example.com/f1"


def test_billing_error_is_cleared_by_reload():
    w = wz.billing_failed(_billing(), "Error al verificar las facturas")

    assert w.state.error
    w = wz.invoices_loaded(w, [])
    assert w.state.error is None
    assert wz.billing_total(w) == Decimal("0.00")


def test_install_and_finish():
    w = wz.advance(_billing())

    assert w.step == "install"
    assert wz.go_back(w).step == "billing"
    done = wz.finish(w)
    assert done.step == "done"
    assert done.delivery_status == DeliveryStatus.WAITING_INSTALL
    with pytest.raises(WizardError):
        wz.finish(done)
    with pytest.raises(WizardError):
        wz.go_back(done)


def test_wizard_survives_session_storage():
    w = wz.select_payment_method(_billing([{"id": "f1", "total": "12.30"}]), "dlocal")

    restored = wz.ApprovalWizard.model_validate(w.model_dump(mode="json"))

    assert restored == w
    assert isinstance(restored.state, wz.BillingStep)
    assert restored.state.invoices[0].total == Decimal("12.30")
