"""Pydantic schemas for ticket chat payloads."""

from __future__ import annotations

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class MessageOut(BaseModel):
    id: int
    content: str
    sender_id: str
    sender_name: str
    display_name: str
    own: bool = False
    created_at: str
