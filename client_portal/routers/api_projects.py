from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import projects as project_store
from ..db.session import get_db
from ..deps.auth import CompanyContext, ensure_project_access, require_company
from ..schemas.portfolio import PortfolioOut, ProjectView
from ..services import aggregation

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("", response_model=PortfolioOut)
def list_projects_endpoint(db: Session = Depends(get_db), ctx: CompanyContext = Depends(require_company)):
    """Every project of the company; failed loads appear as placeholders and in ``failed``."""

    load = aggregation.load_portfolio(db, ctx.company_id)
    return PortfolioOut(
        company_id=ctx.company_id,
        projects=load.projects(),
        failed=load.failed,
        summary=aggregation.portfolio_summary(load),
    )


@router.get("/{project_id}", response_model=ProjectView)
def get_project_endpoint(
    project_id: str,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    project = ensure_project_access(db, ctx, project_id)
    return aggregation.build_project(db, project, project_store.list_invoices(db, [project.id]))
