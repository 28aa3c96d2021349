from __future__ import annotations

from pydantic import BaseModel, Field

from .portfolio import DeliveryView


class DeliveryReject(BaseModel):
    message: str = Field(..., description="Reason shown to the team; blank reasons are refused")


class DeliveryOut(DeliveryView):
    actions: list[str] = Field(default_factory=list)
