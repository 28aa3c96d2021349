"""Portfolio aggregation for the selected company.

``load_portfolio`` reads a company's projects and, per project, the milestone,
backlog, ticket, delivery and incident subcollections; invoices are read once
for the whole project set and joined back by project id. Derived fields
(status, progress, pending counts) are computed here and nowhere else.

The company id is always an explicit argument. A failure while reading one
project's subcollections is recorded for that project only; callers get the
successful projects and the failures side by side.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.lifecycle import client_actions
from ..core.statuses import (
    COMPLETED_LIKE_BACKLOG,
    DELIVERY_RELATED_INCIDENTS,
    BacklogStatus,
    DeliveryStatus,
    IncidentStatus,
    InvoiceStatus,
    ProjectStatus,
    TicketStatus,
)
from ..crud import projects as project_store
from ..models.invoice import Invoice
from ..models.project import Project
from ..schemas.portfolio import (
    BacklogView,
    DeliveryView,
    FlatDelivery,
    FlatIncident,
    FlatInvoice,
    FlatTicket,
    IncidentView,
    InvoiceView,
    MilestoneView,
    PortfolioSummary,
    ProjectFetchError,
    ProjectView,
    TicketView,
)
from .billing import is_invoiced, single_invoice_total

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Error"

OUTSTANDING_INVOICES = frozenset({InvoiceStatus.CONFIRMED, InvoiceStatus.CLIENT_VALIDATION})

INCIDENT_GROUP_ORDER = (
    IncidentStatus.OPEN,
    IncidentStatus.APPROVED,
    IncidentStatus.WAITING_DELIVERY,
    IncidentStatus.PENDING_CLIENT,
    IncidentStatus.REJECTED,
    IncidentStatus.CLOSED,
    IncidentStatus.UNKNOWN,
)


# ---------------------------------------------------------------------------
# Derived fields


def _round_half_up_ratio(numerator: int, denominator: int) -> int:
    """``round(numerator / denominator)`` with halves rounded up, integers only."""

    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def project_status(backlog: Sequence[BacklogView]) -> ProjectStatus:
    if not backlog:
        return ProjectStatus.PENDING
    done = sum(1 for item in backlog if BacklogStatus.parse(item.status) == BacklogStatus.DONE)
    if done == 0:
        return ProjectStatus.PENDING
    if done == len(backlog):
        return ProjectStatus.COMPLETED
    return ProjectStatus.ACTIVE


def milestone_progress(milestone_id: str, backlog: Sequence[BacklogView]) -> int:
    items = [item for item in backlog if item.milestone_id == milestone_id]
    completed = sum(1 for item in items if BacklogStatus.parse(item.status) in COMPLETED_LIKE_BACKLOG)
    return _round_half_up_ratio(100 * completed, len(items))


def project_progress(milestones: Sequence[MilestoneView]) -> int:
    if not milestones:
        return 0
    return _round_half_up_ratio(sum(m.progress for m in milestones), len(milestones))


def pending_deliveries(deliveries: Iterable[DeliveryView]) -> int:
    return sum(1 for d in deliveries if d.status == DeliveryStatus.APPROVED)


def pending_tickets(tickets: Iterable[TicketView]) -> int:
    return sum(1 for t in tickets if t.client_visible and t.status != TicketStatus.CLOSED)


def pending_incidents(incidents: Iterable[IncidentView]) -> int:
    return sum(1 for i in incidents if i.status == IncidentStatus.APPROVED)


def build_milestones(milestones: Iterable[object], backlog: Sequence[BacklogView]) -> list[MilestoneView]:
    views: list[MilestoneView] = []
    for row in milestones:
        view = MilestoneView.model_validate(row)
        view.backlog_items = [item for item in backlog if item.milestone_id == view.id]
        view.total_tasks = len(view.backlog_items)
        view.progress = milestone_progress(view.id, backlog)
        views.append(view)
    return views


# ---------------------------------------------------------------------------
# Loading


class PortfolioLoad(BaseModel):
    """Per-project outcomes of one portfolio load, in store order."""

    company_id: str
    order: list[str] = Field(default_factory=list)
    succeeded: list[ProjectView] = Field(default_factory=list)
    failed: list[ProjectFetchError] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed)

    def projects(self) -> list[ProjectView]:
        """Loaded projects with a zeroed placeholder in place of each failure."""

        by_id = {project.id: project for project in self.succeeded}
        failed_ids = {error.project_id for error in self.failed}
        result: list[ProjectView] = []
        for project_id in self.order:
            if project_id in by_id:
                result.append(by_id[project_id])
            elif project_id in failed_ids:
                result.append(placeholder_project(project_id))
        return result

    def find(self, project_id: str) -> ProjectView | None:
        for project in self.succeeded:
            if project.id == project_id:
                return project
        return None


def placeholder_project(project_id: str) -> ProjectView:
    return ProjectView(id=project_id, name=PLACEHOLDER_NAME, status=ProjectStatus.PENDING, placeholder=True)


def build_project(db: Session, project: Project, invoices: Sequence[Invoice] = ()) -> ProjectView:
    """Read one project's subcollections and derive its fields.

    Raises whatever the store raises; ``load_portfolio`` decides what a
    failure means for the whole list.
    """

    backlog = [BacklogView.model_validate(row) for row in project_store.list_backlog(db, project.id)]
    milestones = build_milestones(project_store.list_milestones(db, project.id), backlog)
    tickets = [TicketView.model_validate(row) for row in project_store.list_tickets(db, project.id)]
    deliveries = [DeliveryView.model_validate(row) for row in project_store.list_deliveries(db, project.id)]
    incidents = [IncidentView.model_validate(row) for row in project_store.list_incidents(db, project.id)]
    project_invoices = [InvoiceView.model_validate(row) for row in invoices if row.project_id == project.id]
    for invoice in project_invoices:
        if not invoice.project_name:
            invoice.project_name = project.name

    return ProjectView(
        id=project.id,
        company_id=project.company_id,
        name=project.name,
        client=project.client,
        description=project.description,
        start_date=project.start_date,
        due_date=project.due_date,
        status=project_status(backlog),
        progress=project_progress(milestones),
        pending_deliveries=pending_deliveries(deliveries),
        pending_tickets=pending_tickets(tickets),
        pending_incidents=pending_incidents(incidents),
        milestones=milestones,
        backlog=backlog,
        tickets=tickets,
        deliveries=deliveries,
        incidents=incidents,
        invoices=project_invoices,
    )


def load_portfolio(db: Session, company_id: str) -> PortfolioLoad:
    projects = project_store.list_company_projects(db, company_id)
    load = PortfolioLoad(company_id=company_id, order=[project.id for project in projects])
    if not projects:
        return load

    invoices = project_store.list_invoices(db, load.order)
    for project in projects:
        try:
            load.succeeded.append(build_project(db, project, invoices))
        except Exception as exc:
            db.rollback()
            logger.warning(
                "portfolio.project_failed",
                exc_info=True,
                extra={"extra_data": {"company_id": company_id, "project_id": project.id, "error": str(exc)}},
            )
            load.failed.append(ProjectFetchError(project_id=project.id, message=str(exc) or type(exc).__name__))

    logger.info(
        "portfolio.loaded",
        extra={
            "extra_data": {
                "company_id": company_id,
                "projects": len(load.succeeded),
                "failed": len(load.failed),
            }
        },
    )
    return load


# ---------------------------------------------------------------------------
# Page flatteners


def _matches(search: str | None, *fields: str | None) -> bool:
    if not search or not search.strip():
        return True
    needle = search.strip().lower()
    return any(needle in (field or "").lower() for field in fields)


def flatten_deliveries(
    projects: Iterable[ProjectView],
    *,
    project_id: str | None = None,
    search: str | None = None,
    status: DeliveryStatus | str | None = None,
) -> list[FlatDelivery]:
    wanted_status = DeliveryStatus.parse(status) if status else None
    rows: list[FlatDelivery] = []
    for project in projects:
        if project.placeholder or (project_id and project.id != project_id):
            continue
        milestones = {m.id: m for m in project.milestones}
        related = [i for i in project.incidents if i.status in DELIVERY_RELATED_INCIDENTS]
        for delivery in project.deliveries:
            if wanted_status is not None and delivery.status != wanted_status:
                continue
            milestone = milestones.get(delivery.milestone_id or "")
            if not _matches(search, delivery.description, project.name, milestone.title if milestone else None):
                continue
            backlog_ids = [item.id for item in milestone.backlog_items] if milestone else []
            rows.append(
                FlatDelivery(
                    delivery=delivery,
                    project_id=project.id,
                    project_name=project.name,
                    milestone=milestone,
                    related_incidents=related,
                    invoiced=is_invoiced(project.invoices, delivery.milestone_id, backlog_ids),
                    actions=list(client_actions(delivery.status)),
                )
            )
    return rows


def flatten_incidents(
    projects: Iterable[ProjectView],
    *,
    project_id: str | None = None,
    search: str | None = None,
) -> list[FlatIncident]:
    rows: list[FlatIncident] = []
    for project in projects:
        if project.placeholder or (project_id and project.id != project_id):
            continue
        for incident in project.incidents:
            if _matches(search, incident.title, incident.description, project.name):
                rows.append(FlatIncident(incident=incident, project_id=project.id, project_name=project.name))
    return rows


def group_incidents(rows: Iterable[FlatIncident]) -> dict[IncidentStatus, list[FlatIncident]]:
    groups: dict[IncidentStatus, list[FlatIncident]] = {status: [] for status in INCIDENT_GROUP_ORDER}
    for row in rows:
        groups[row.incident.status].append(row)
    return {status: items for status, items in groups.items() if items or status != IncidentStatus.UNKNOWN}


def flatten_tickets(
    projects: Iterable[ProjectView],
    *,
    project_id: str | None = None,
    status: TicketStatus | str | None = None,
) -> list[FlatTicket]:
    """Client-visible tickets only."""

    wanted_status = TicketStatus.parse(status) if status else None
    rows: list[FlatTicket] = []
    for project in projects:
        if project.placeholder or (project_id and project.id != project_id):
            continue
        for ticket in project.tickets:
            if not ticket.client_visible:
                continue
            if wanted_status is not None and ticket.status != wanted_status:
                continue
            rows.append(FlatTicket(ticket=ticket, project_id=project.id, project_name=project.name))
    return rows


def flatten_invoices(
    projects: Iterable[ProjectView],
    *,
    status: InvoiceStatus | str | None = None,
) -> list[FlatInvoice]:
    wanted_status = InvoiceStatus.parse(status) if status else None
    rows: list[FlatInvoice] = []
    for project in projects:
        if project.placeholder:
            continue
        for invoice in project.invoices:
            if wanted_status is not None and invoice.status != wanted_status:
                continue
            rows.append(
                FlatInvoice(
                    invoice=invoice,
                    project_id=project.id,
                    project_name=invoice.project_name or project.name,
                    amount=single_invoice_total(invoice),
                )
            )
    rows.sort(key=lambda row: row.invoice.date or "", reverse=True)
    return rows


def portfolio_summary(load: PortfolioLoad) -> PortfolioSummary:
    projects = load.succeeded
    outstanding = sum(
        1 for project in projects for invoice in project.invoices if invoice.status in OUTSTANDING_INVOICES
    )
    return PortfolioSummary(
        projects=len(load.order),
        active_projects=sum(1 for p in projects if p.status == ProjectStatus.ACTIVE),
        completed_projects=sum(1 for p in projects if p.status == ProjectStatus.COMPLETED),
        average_progress=project_progress_mean(projects),
        pending_deliveries=sum(p.pending_deliveries for p in projects),
        pending_tickets=sum(p.pending_tickets for p in projects),
        pending_incidents=sum(p.pending_incidents for p in projects),
        outstanding_invoices=outstanding,
        degraded=load.degraded,
    )


def project_progress_mean(projects: Sequence[ProjectView]) -> int:
    if not projects:
        return 0
    return _round_half_up_ratio(sum(p.progress for p in projects), len(projects))


def outstanding_amount(rows: Iterable[FlatInvoice]) -> Decimal:
    return sum(
        (row.amount for row in rows if row.invoice.status in OUTSTANDING_INVOICES),
        Decimal("0.00"),
    )


__all__ = [
    "PLACEHOLDER_NAME",
    "PortfolioLoad",
    "build_project",
    "flatten_deliveries",
    "flatten_incidents",
    "flatten_invoices",
    "flatten_tickets",
    "group_incidents",
    "load_portfolio",
    "milestone_progress",
    "outstanding_amount",
    "pending_deliveries",
    "pending_incidents",
    "pending_tickets",
    "placeholder_project",
    "portfolio_summary",
    "project_progress",
    "project_status",
]
