"""Tests for delivery status transitions and their persistence."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from client_portal.db.session import Base
from client_portal.core.errors import InvalidTransition
from client_portal.core.lifecycle import can_transition, client_actions, ensure_transition
from client_portal.core.statuses import DeliveryStatus, status_label
from client_portal.crud.deliveries import reject_delivery, transition_delivery
from client_portal.models import Company, Delivery, Project


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def delivery(db_session):
    db_session.add(Company(id="c1", name="Acme"))
    db_session.add(Project(id="p1", company_id="c1", name="Portal"))
    row = Delivery(id="d1", project_id="p1", milestone_id="m1", status="approved")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("approved", "client_approve", True),
        ("approved", "client_rejected", True),
        ("client_approve", "waiting_install", True),
        ("waiting_install", "server_installed", True),
        ("approved", "waiting_install", False),
        ("client_rejected", "client_approve", False),
        ("server_installed", "approved", False),
        ("bogus", "approved", False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_ensure_transition_reports_both_ends():
    with pytest.raises(InvalidTransition) as excinfo:
        ensure_transition(DeliveryStatus.CLIENT_REJECTED, DeliveryStatus.CLIENT_APPROVE)

    assert excinfo.value.details == {"from": "client_rejected", "to": "client_approve"}
    assert excinfo.value.status_code == 409


def test_client_actions_by_status():
    assert client_actions("approved") == ("approve", "reject")
    assert client_actions("client_approve") == ("approve",)
    assert client_actions("waiting_install") == ()
    assert client_actions("unexpected") == ()


def test_unknown_status_is_labelled():
    assert DeliveryStatus.parse("nonsense") == DeliveryStatus.UNKNOWN
    assert DeliveryStatus.parse(" APPROVED ") == DeliveryStatus.APPROVED
    assert status_label(DeliveryStatus.UNKNOWN) == "Desconocido"


def test_transition_records_review_and_history(db_session, delivery):
    updated = transition_delivery(db_session, delivery, DeliveryStatus.CLIENT_APPROVE, notes="ok", actor="u1")

    assert updated.status == "client_approve"
    assert updated.review_notes == "ok"
    assert updated.reviewed_at == updated.updated_at
    assert updated.history[-1]["type"] == "status_change"
    assert updated.history[-1]["message"] == "approved -> client_approve"
    assert updated.history[-1]["created_by"] == "u1"


def test_transition_outside_review_keeps_review_fields(db_session, delivery):
    transition_delivery(db_session, delivery, DeliveryStatus.CLIENT_APPROVE, notes="ok")

    updated = transition_delivery(db_session, delivery, DeliveryStatus.WAITING_INSTALL, notes="ignored")

    assert updated.status == "waiting_install"
    assert updated.review_notes == "ok"
    assert len(updated.history) == 2


def test_invalid_transition_leaves_row_untouched(db_session, delivery):
    with pytest.raises(InvalidTransition):
        transition_delivery(db_session, delivery, DeliveryStatus.SERVER_INSTALLED)

    db_session.refresh(delivery)
    assert delivery.status == "approved"
    assert delivery.history == []


def test_reject_requires_reason(db_session, delivery):
    with pytest.raises(ValueError):
        reject_delivery(db_session, delivery, "   ")

    rejected = reject_delivery(db_session, delivery, "  Falta el botón de exportar ")

    assert rejected.status == "client_rejected"
    assert rejected.review_notes == "Falta el botón de exportar"
