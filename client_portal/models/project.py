"""Projects and the milestone/backlog subcollections under them."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text

from ..db.session import Base
from ._ids import new_id


class Project(Base):
    """``projects/{id}``. Status, progress and pending counts are derived."""

    __tablename__ = "projects"

    id = Column(Text, primary_key=True, default=new_id)
    company_id = Column(Text, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    opportunity_id = Column(Text, nullable=True)
    client = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    visible = Column(Integer, nullable=False, default=1)
    ppc = Column(Text, nullable=True)
    ppp = Column(Text, nullable=True)
    start_date = Column(Text, nullable=True)
    due_date = Column(Text, nullable=True)
    created_at = Column(Text, nullable=True)


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    due_date = Column(Text, nullable=True)
    date_end = Column(Text, nullable=True)
    status = Column(Text, nullable=True)


class BacklogItem(Base):
    __tablename__ = "backlog_items"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    milestone_id = Column(Text, nullable=True, index=True)
    task = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    # The store keeps backlog states in free text under ``estado``.
    status = Column("estado", Text, nullable=True)
    estimate = Column(Text, nullable=True)
    invoiced = Column(Integer, nullable=False, default=0)
    assigned_user_name = Column(Text, nullable=True)
    priority = Column(Text, nullable=True)


__all__ = ["BacklogItem", "Milestone", "Project"]
