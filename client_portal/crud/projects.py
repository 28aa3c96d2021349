"""Read helpers for projects and their subcollections.

Every query is scoped explicitly: by company id for projects, by project id for
everything below a project.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.statuses import VISIBLE_DELIVERY_STATUSES
from ..models.delivery import Delivery
from ..models.incident import Incident
from ..models.invoice import Invoice
from ..models.project import BacklogItem, Milestone, Project
from ..models.ticket import Ticket


def list_company_projects(db: Session, company_id: str) -> list[Project]:
    stmt = (
        select(Project)
        .where(Project.company_id == company_id)
        .order_by(Project.created_at, Project.id)
    )
    return list(db.execute(stmt).scalars().all())


def get_project(db: Session, project_id: str) -> Project | None:
    return db.get(Project, project_id)


def list_milestones(db: Session, project_id: str) -> list[Milestone]:
    stmt = select(Milestone).where(Milestone.project_id == project_id).order_by(Milestone.due_date, Milestone.id)
    return list(db.execute(stmt).scalars().all())


def list_backlog(db: Session, project_id: str) -> list[BacklogItem]:
    stmt = select(BacklogItem).where(BacklogItem.project_id == project_id).order_by(BacklogItem.id)
    return list(db.execute(stmt).scalars().all())


def list_tickets(db: Session, project_id: str) -> list[Ticket]:
    stmt = select(Ticket).where(Ticket.project_id == project_id).order_by(Ticket.created_at.desc(), Ticket.id)
    return list(db.execute(stmt).scalars().all())


def list_deliveries(
    db: Session,
    project_id: str,
    statuses: Iterable[str] = VISIBLE_DELIVERY_STATUSES,
) -> list[Delivery]:
    allowed = [str(getattr(status, "value", status)) for status in statuses]
    stmt = (
        select(Delivery)
        .where(Delivery.project_id == project_id, Delivery.status.in_(allowed))
        .order_by(Delivery.created_at.desc(), Delivery.id)
    )
    return list(db.execute(stmt).scalars().all())


def list_incidents(db: Session, project_id: str) -> list[Incident]:
    stmt = select(Incident).where(Incident.project_id == project_id).order_by(Incident.created_at.desc(), Incident.id)
    return list(db.execute(stmt).scalars().all())


def list_invoices(db: Session, project_ids: Iterable[str]) -> list[Invoice]:
    ids = list(project_ids)
    if not ids:
        return []
    stmt = select(Invoice).where(Invoice.project_id.in_(ids)).order_by(Invoice.date.desc(), Invoice.id)
    return list(db.execute(stmt).scalars().all())


def get_delivery(db: Session, project_id: str, delivery_id: str) -> Delivery | None:
    delivery = db.get(Delivery, delivery_id)
    if delivery is None or delivery.project_id != project_id:
        return None
    return delivery


def get_milestone(db: Session, project_id: str, milestone_id: str | None) -> Milestone | None:
    if not milestone_id:
        return None
    milestone = db.get(Milestone, milestone_id)
    if milestone is None or milestone.project_id != project_id:
        return None
    return milestone


def milestone_backlog(db: Session, project_id: str, milestone_id: str | None) -> list[BacklogItem]:
    if not milestone_id:
        return []
    stmt = (
        select(BacklogItem)
        .where(BacklogItem.project_id == project_id, BacklogItem.milestone_id == milestone_id)
        .order_by(BacklogItem.id)
    )
    return list(db.execute(stmt).scalars().all())


__all__ = [
    "get_delivery",
    "get_milestone",
    "get_project",
    "list_backlog",
    "list_company_projects",
    "list_deliveries",
    "list_incidents",
    "list_invoices",
    "list_milestones",
    "list_tickets",
    "milestone_backlog",
]
