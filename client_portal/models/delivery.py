"""SQLAlchemy model for milestone deliveries under review by the client."""

from __future__ import annotations

import json

from sqlalchemy import Column, ForeignKey, Text

from ..db.session import Base
from ._ids import new_id


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    milestone_id = Column(Text, nullable=True, index=True)
    programmer_id = Column(Text, nullable=True)
    loom_url = Column(Text, nullable=True)
    testing_url = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    currency = Column(Text, nullable=True)
    status = Column(Text, nullable=False)
    review_notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=True)
    reviewed_at = Column(Text, nullable=True)
    history_blob = Column("history", Text, nullable=True)

    @property
    def history(self) -> list[dict[str, object]]:
        raw = self.history_blob
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return []
        if not isinstance(decoded, list):
            return []
        return [entry for entry in decoded if isinstance(entry, dict)]

    def append_history(self, entry: dict[str, object]) -> None:
        entries = self.history
        entries.append(entry)
        self.history_blob = json.dumps(entries)


__all__ = ["Delivery"]
