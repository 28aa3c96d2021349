"""Tests for portfolio loading and the derived project fields."""

import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from client_portal.db.session import Base
from client_portal.core.statuses import DeliveryStatus, IncidentStatus, InvoiceStatus, ProjectStatus
from client_portal.crud import projects as project_store
from client_portal.models import (
    BacklogItem,
    Company,
    Delivery,
    Incident,
    Invoice,
    Milestone,
    Project,
    Ticket,
)
from client_portal.schemas.portfolio import BacklogView, MilestoneView
from client_portal.services import aggregation


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


def _seed(db):
    db.add(Company(id="c1", name="Acme"))
    db.add(Company(id="c2", name="Other"))
    db.add_all(
        [
            Project(id="p1", company_id="c1", name="Portal", created_at="2024-01-01"),
            Project(id="p2", company_id="c1", name="App", created_at="2024-02-01"),
            Project(id="p3", company_id="c1", name="Oculto", visible=0, created_at="2024-03-01"),
            Project(id="px", company_id="c2", name="Ajeno", created_at="2024-01-01"),
        ]
    )
    db.add_all(
        [
            Milestone(id="m1", project_id="p1", title="Fase 1", due_date="2024-03-01"),
            Milestone(id="m2", project_id="p1", title="Fase 2", due_date="2024-06-01"),
            BacklogItem(id="b1", project_id="p1", milestone_id="m1", task="Login", status="Finalizado"),
            BacklogItem(id="b2", project_id="p1", milestone_id="m1", task="Perfil", status="Revisión"),
            BacklogItem(id="b3", project_id="p1", milestone_id="m1", task="Pagos", status="Pendiente"),
            BacklogItem(id="b4", project_id="p1", milestone_id="m2", task="Informes", status="En progreso"),
        ]
    )
    db.add_all(
        [
            Delivery(id="d1", project_id="p1", milestone_id="m1", status="approved", created_at="2024-03-02"),
            Delivery(id="d2", project_id="p1", milestone_id="m2", status="waiting_install", created_at="2024-03-01"),
            Delivery(id="d3", project_id="p1", milestone_id="m2", status="delivered", created_at="2024-03-03"),
        ]
    )
    db.add_all(
        [
            Incident(id="i1", project_id="p1", title="Error login", status="approved", created_at="2024-03-01"),
            Incident(id="i2", project_id="p1", title="Lento", status="waiting_delivery", created_at="2024-03-02"),
            Incident(id="i3", project_id="p1", title="Cerrado", status="closed", created_at="2024-03-03"),
            Incident(id="i4", project_id="p1", title="Raro", status="???", created_at="2024-03-04"),
        ]
    )
    db.add_all(
        [
            Ticket(id="t1", project_id="p1", title="Duda", status="open"),
            Ticket(id="t2", project_id="p1", title="Interno", status="open", client_visible=0),
            Ticket(id="t3", project_id="p1", title="Cerrado", status="closed"),
        ]
    )
    invoice = Invoice(id="f1", project_id="p1", number="F-1", date="2024-03-05", status="confirmed", total="120.50")
    invoice.items = [{"task": "Login", "amount": "120.50", "backlog_item_id": "b1"}]
    paid = Invoice(id="f2", project_id="p1", number="F-2", date="2024-02-05", status="paid_by_client")
    paid.items = [{"task": "Otro", "amount": "79.50"}]
    db.add_all([invoice, paid])
    db.commit()


def test_milestone_progress_counts_review_as_complete():
    backlog = [
        BacklogView(id="a", project_id="p", milestone_id="m", task="a", status="Finalizado"),
        BacklogView(id="b", project_id="p", milestone_id="m", task="b", status="Revisión por el cliente"),
        BacklogView(id="c", project_id="p", milestone_id="m", task="c", status="Pendiente"),
    ]

    assert aggregation.milestone_progress("m", backlog) == 67
    assert aggregation.milestone_progress("empty", backlog) == 0


def test_project_progress_rounds_half_up():
    milestones = [
        MilestoneView(id="m1", project_id="p", title="a", progress=67),
        MilestoneView(id="m2", project_id="p", title="b", progress=0),
    ]

    assert aggregation.project_progress(milestones) == 34
    assert aggregation.project_progress([]) == 0


def test_project_status_from_backlog():
    def item(status):
        return BacklogView(id=status, project_id="p", task="t", status=status)

    assert aggregation.project_status([]) == ProjectStatus.PENDING
    assert aggregation.project_status([item("Pendiente"), item("Revisión")]) == ProjectStatus.PENDING
    assert aggregation.project_status([item("Finalizado"), item("Pendiente")]) == ProjectStatus.ACTIVE
    assert aggregation.project_status([item("Finalizado")]) == ProjectStatus.COMPLETED


def test_load_portfolio_scopes_to_company(db_session):
    _seed(db_session)

    load = aggregation.load_portfolio(db_session, "c1")

    assert load.order == ["p1", "p2", "p3"]
    assert not load.degraded
    portal = load.find("p1")
    assert portal.progress == 34
    assert portal.status == ProjectStatus.ACTIVE
    assert [m.total_tasks for m in portal.milestones] == [3, 1]
    assert portal.pending_deliveries == 1
    assert portal.pending_tickets == 1
    assert portal.pending_incidents == 1
    assert {d.id for d in portal.deliveries} == {"d1", "d2"}
    assert {i.id: i.status for i in portal.incidents}["i4"] == IncidentStatus.UNKNOWN
    assert [i.project_name for i in portal.invoices] == ["Portal", "Portal"]


def test_load_portfolio_includes_projects_flagged_hidden(db_session):
    _seed(db_session)

    load = aggregation.load_portfolio(db_session, "c1")

    hidden = load.find("p3")
    assert hidden is not None
    assert hidden.name == "Oculto"
    assert hidden.progress == 0
    assert hidden.status == ProjectStatus.PENDING
    assert aggregation.portfolio_summary(load).projects == 3


def test_load_portfolio_keeps_going_when_a_project_fails(db_session, monkeypatch):
    _seed(db_session)
    original = project_store.list_milestones

    def flaky(db, project_id):
        if project_id == "p1":
            raise RuntimeError("store unavailable")
        return original(db, project_id)

    monkeypatch.setattr(project_store, "list_milestones", flaky)

    load = aggregation.load_portfolio(db_session, "c1")

    assert load.degraded
    assert [error.project_id for error in load.failed] == ["p1"]
    assert "store unavailable" in load.failed[0].message
    projects = load.projects()
    assert [p.id for p in projects] == ["p1", "p2", "p3"]
    assert projects[0].placeholder
    assert projects[0].name == "Error"
    assert projects[0].progress == 0
    summary = aggregation.portfolio_summary(load)
    assert summary.degraded
    assert summary.projects == 3


def test_flatten_deliveries_adds_actions_and_invoicing(db_session):
    _seed(db_session)
    projects = aggregation.load_portfolio(db_session, "c1").projects()

    rows = aggregation.flatten_deliveries(projects)
    by_id = {row.delivery.id: row for row in rows}

    assert by_id["d1"].actions == ["approve", "reject"]
    assert by_id["d1"].invoiced is True
    assert by_id["d1"].milestone.title == "Fase 1"
    assert {i.id for i in by_id["d1"].related_incidents} == {"i1", "i2"}
    assert by_id["d2"].actions == []
    assert by_id["d2"].invoiced is False

    approved = aggregation.flatten_deliveries(projects, status="approved")
    assert [row.delivery.id for row in approved] == ["d1"]
    assert [row.delivery.id for row in aggregation.flatten_deliveries(projects, search="fase 2")] == ["d2"]
    assert aggregation.flatten_deliveries(projects, project_id="p2") == []


def test_group_incidents_orders_by_status(db_session):
    _seed(db_session)
    projects = aggregation.load_portfolio(db_session, "c1").projects()

    groups = aggregation.group_incidents(aggregation.flatten_incidents(projects))

    assert list(groups)[0] == IncidentStatus.OPEN
    assert [row.incident.id for row in groups[IncidentStatus.APPROVED]] == ["i1"]
    assert [row.incident.id for row in groups[IncidentStatus.UNKNOWN]] == ["i4"]


def test_flatten_tickets_hides_internal_tickets(db_session):
    _seed(db_session)
    projects = aggregation.load_portfolio(db_session, "c1").projects()

    rows = aggregation.flatten_tickets(projects)

    assert {row.ticket.id for row in rows} == {"t1", "t3"}
    assert [row.ticket.id for row in aggregation.flatten_tickets(projects, status="open")] == ["t1"]


def test_invoices_and_outstanding_amount(db_session):
    _seed(db_session)
    load = aggregation.load_portfolio(db_session, "c1")

    rows = aggregation.flatten_invoices(load.projects())

    assert [row.invoice.id for row in rows] == ["f1", "f2"]
    assert rows[1].amount == Decimal("79.50")
    assert aggregation.outstanding_amount(rows) == Decimal("120.50")
    assert aggregation.portfolio_summary(load).outstanding_invoices == 1
    confirmed = aggregation.flatten_invoices(load.projects(), status=InvoiceStatus.CONFIRMED)
    assert [row.invoice.id for row in confirmed] == ["f1"]


def test_delivery_listing_hides_internal_statuses(db_session):
    _seed(db_session)

    statuses = {DeliveryStatus.parse(d.status) for d in project_store.list_deliveries(db_session, "p1")}

    assert DeliveryStatus.DELIVERED not in statuses
