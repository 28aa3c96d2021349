"""Support tickets and their chat message subcollection."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text

from ..db.session import Base
from ._ids import new_id


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    priority = Column(Text, nullable=True)
    client_visible = Column(Integer, nullable=False, default=1)
    created_at = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=True)
    assigned_to = Column(Text, nullable=True)


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(Text, ForeignKey("tickets.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    sender_id = Column(Text, nullable=False)
    sender_name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)


__all__ = ["Ticket", "TicketMessage"]
