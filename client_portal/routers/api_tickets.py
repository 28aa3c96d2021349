from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..crud import tickets as ticket_store
from ..db.session import get_db, get_session_factory
from ..deps.auth import CompanyContext, ensure_project_access, require_company
from ..schemas.ticket import MessageCreate, MessageOut
from ..services.chat import message_payload, stream_messages

router = APIRouter(prefix="/api/v1/tickets", tags=["tickets"])


def _visible_ticket(db: Session, ctx: CompanyContext, project_id: str, ticket_id: str):
    ensure_project_access(db, ctx, project_id)
    ticket = ticket_store.get_ticket(db, project_id, ticket_id)
    if ticket is None or not ticket.client_visible:
        raise NotFound("Ticket no encontrado")
    return ticket


@router.get("/{project_id}/{ticket_id}/messages", response_model=list[MessageOut])
def list_messages_endpoint(
    project_id: str,
    ticket_id: str,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    _visible_ticket(db, ctx, project_id, ticket_id)
    return [message_payload(m, ctx.current.uid) for m in ticket_store.list_messages(db, project_id, ticket_id)]


@router.post("/{project_id}/{ticket_id}/messages", response_model=MessageOut, status_code=201)
def post_message_endpoint(
    project_id: str,
    ticket_id: str,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    ticket = _visible_ticket(db, ctx, project_id, ticket_id)
    try:
        message = ticket_store.post_message(db, ticket, ctx.current.user, payload.content)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return message_payload(message, ctx.current.uid)


@router.get("/{project_id}/{ticket_id}/messages/stream")
def stream_messages_endpoint(
    project_id: str,
    ticket_id: str,
    request: Request,
    after: int | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    session_factory=Depends(get_session_factory),
):
    _visible_ticket(db, ctx, project_id, ticket_id)
    frames = stream_messages(
        session_factory,
        ticket_id,
        ctx.current.uid,
        is_disconnected=request.is_disconnected,
        after_id=after,
    )
    return StreamingResponse(frames, media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
