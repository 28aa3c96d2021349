"""Invoices are a top-level collection queried by project id."""

from __future__ import annotations

import json

from sqlalchemy import Column, ForeignKey, Text

from ..db.session import Base
from ._ids import new_id


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    project_name = Column(Text, nullable=True)
    number = Column(Text, nullable=True)
    date = Column(Text, nullable=True)
    due_date = Column(Text, nullable=True)
    currency = Column(Text, nullable=True)
    items_blob = Column("items", Text, nullable=True)
    subtotal = Column(Text, nullable=True)
    tax = Column(Text, nullable=True)
    total = Column(Text, nullable=True)
    status = Column(Text, nullable=True)

    @property
    def items(self) -> list[dict[str, object]]:
        """Line items ``{task, description, hours, rate, amount, backlog_item_id}``."""

        raw = self.items_blob
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return []
        if not isinstance(decoded, list):
            return []
        return [item for item in decoded if isinstance(item, dict)]

    @items.setter
    def items(self, value: list[dict[str, object]] | None) -> None:
        self.items_blob = json.dumps(list(value or []))


__all__ = ["Invoice"]
