"""Ticket chat feed.

Messages are pushed to the browser as server-sent events. The feed polls the
store for rows newer than the last one sent and ends when the client goes
away; there are no receipts and no offline queue.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..crud import tickets as ticket_store
from ..models.ticket import TicketMessage

logger = logging.getLogger(__name__)

OWN_SENDER_LABEL = "Tú"


def message_payload(message: TicketMessage, viewer_uid: str | None) -> dict[str, Any]:
    own = bool(viewer_uid) and message.sender_id == viewer_uid
    return {
        "id": message.id,
        "content": message.content,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "display_name": OWN_SENDER_LABEL if own else message.sender_name,
        "own": own,
        "created_at": message.created_at,
    }


def format_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _fetch_since(session_factory: Callable[[], Session], ticket_id: str, after_id: int | None) -> list[TicketMessage]:
    db = session_factory()
    try:
        rows = ticket_store.messages_since(db, ticket_id, after_id)
        db.expunge_all()
        return rows
    finally:
        db.close()


async def stream_messages(
    session_factory: Callable[[], Session],
    ticket_id: str,
    viewer_uid: str | None,
    *,
    is_disconnected: Callable[[], Awaitable[bool]],
    after_id: int | None = None,
    poll_seconds: float | None = None,
    max_polls: int | None = None,
) -> AsyncIterator[str]:
    """Yield one SSE frame per message, oldest first, until disconnect."""

    interval = settings.CHAT_POLL_SECONDS if poll_seconds is None else poll_seconds
    last_id = after_id
    polls = 0
    try:
        while True:
            if await is_disconnected():
                break
            rows = await run_in_threadpool(_fetch_since, session_factory, ticket_id, last_id)
            for row in rows:
                last_id = row.id
                yield format_event(message_payload(row, viewer_uid))
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            await asyncio.sleep(interval)
    finally:
        logger.debug("chat.stream_closed", extra={"extra_data": {"ticket_id": ticket_id, "last_id": last_id}})


__all__ = ["OWN_SENDER_LABEL", "format_event", "message_payload", "stream_messages"]
