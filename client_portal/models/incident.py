from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Text

from ..db.session import Base
from ._ids import new_id


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(Text, primary_key=True, default=new_id)
    project_id = Column(Text, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    priority = Column(Text, nullable=True)
    created_at = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=True)
    assigned_to = Column(Text, nullable=True)
    reported_by = Column(Text, nullable=True)


__all__ = ["Incident"]
