from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.errors import NotFound, WizardError
from ..core.lifecycle import client_actions
from ..crud import projects as project_store
from ..db.session import get_db
from ..deps.auth import CompanyContext, ensure_project_access, require_company
from ..schemas.delivery import DeliveryOut, DeliveryReject
from ..schemas.portfolio import FlatDelivery
from ..services import aggregation, approval

router = APIRouter(prefix="/api/v1/deliveries", tags=["deliveries"])


@router.get("", response_model=list[FlatDelivery])
def list_deliveries_endpoint(
    project: str | None = None,
    q: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    load = aggregation.load_portfolio(db, ctx.company_id)
    return aggregation.flatten_deliveries(load.projects(), project_id=project, search=q, status=status)


@router.post("/{project_id}/{delivery_id}/reject", response_model=DeliveryOut)
def reject_delivery_endpoint(
    project_id: str,
    delivery_id: str,
    payload: DeliveryReject,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    ensure_project_access(db, ctx, project_id)
    delivery = project_store.get_delivery(db, project_id, delivery_id)
    if delivery is None:
        raise NotFound("Entrega no encontrada")
    try:
        approval.reject_delivery(db, delivery, payload.message, actor=ctx.current.uid)
    except WizardError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc
    out = DeliveryOut.model_validate(delivery)
    out.actions = list(client_actions(out.status))
    return out
