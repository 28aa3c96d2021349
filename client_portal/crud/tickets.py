"""Ticket lookups and the chat message subcollection."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.company import User
from ..models.ticket import Ticket, TicketMessage

DEFAULT_SENDER_NAME = "Usuario"


def _utcnow() -> str:
    # Microseconds keep rapid messages in send order.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def get_ticket(db: Session, project_id: str, ticket_id: str) -> Ticket | None:
    ticket = db.get(Ticket, ticket_id)
    if ticket is None or ticket.project_id != project_id:
        return None
    return ticket


def list_messages(db: Session, project_id: str, ticket_id: str) -> list[TicketMessage]:
    """Whole history, oldest first."""

    stmt = (
        select(TicketMessage)
        .join(Ticket, Ticket.id == TicketMessage.ticket_id)
        .where(Ticket.project_id == project_id, TicketMessage.ticket_id == ticket_id)
        .order_by(TicketMessage.created_at, TicketMessage.id)
    )
    return list(db.execute(stmt).scalars().all())


def messages_since(db: Session, ticket_id: str, after_id: int | None) -> list[TicketMessage]:
    stmt = select(TicketMessage).where(TicketMessage.ticket_id == ticket_id)
    if after_id is not None:
        stmt = stmt.where(TicketMessage.id > after_id)
    stmt = stmt.order_by(TicketMessage.created_at, TicketMessage.id)
    return list(db.execute(stmt).scalars().all())


def post_message(db: Session, ticket: Ticket, user: User, content: str) -> TicketMessage:
    text = (content or "").strip()
    if not text:
        raise ValueError("Message content is required")
    message = TicketMessage(
        ticket_id=ticket.id,
        content=text,
        sender_id=user.uid,
        sender_name=(user.name or "").strip() or DEFAULT_SENDER_NAME,
        created_at=_utcnow(),
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


__all__ = ["get_ticket", "list_messages", "messages_since", "post_message"]
