from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import NotFound
from ..core.jinja import get_templates
from ..core.statuses import DeliveryStatus, InvoiceStatus, TicketStatus
from ..crud import accounts as account_store
from ..crud import projects as project_store
from ..crud import tickets as ticket_store
from ..db.session import get_db
from ..deps.auth import CompanyContext, ensure_project_access, require_company
from ..deps.ui_auth import pop_notices, push_notice, require_ui_session, safe_redirect_target, select_company
from ..schemas.notice import Notice
from ..services import aggregation
from ..services.billing import format_money, invoices_currency
from ..services.chat import message_payload

templates = get_templates()

router = APIRouter(dependencies=[Depends(require_ui_session)])

DELIVERY_TABS = (
    DeliveryStatus.APPROVED,
    DeliveryStatus.CLIENT_APPROVE,
    DeliveryStatus.WAITING_INSTALL,
    DeliveryStatus.SERVER_INSTALLED,
    DeliveryStatus.CLIENT_REJECTED,
)


def page_context(request: Request, db: Session, ctx: CompanyContext, **extra: Any) -> dict[str, Any]:
    """Values every signed-in page needs: user, company selector, notices."""

    memberships = account_store.list_memberships(db, ctx.current.uid)
    context = {
        "user": ctx.current.user,
        "company": ctx.company,
        "is_admin": ctx.is_admin,
        "companies": [company for _, company in memberships],
        "notices": pop_notices(request),
        "active_path": request.url.path,
    }
    context.update(extra)
    return context


def render(request: Request, template: str, context: dict[str, Any], status_code: int = 200):
    return templates.TemplateResponse(request, template, context, status_code=status_code)


@router.get("/", response_class=HTMLResponse)
def dashboard_page(request: Request, db: Session = Depends(get_db), ctx: CompanyContext = Depends(require_company)):
    load = aggregation.load_portfolio(db, ctx.company_id)
    projects = load.projects()
    awaiting = aggregation.flatten_deliveries(projects, status=DeliveryStatus.APPROVED)
    context = page_context(
        request,
        db,
        ctx,
        summary=aggregation.portfolio_summary(load),
        projects=projects,
        failed=load.failed,
        awaiting_deliveries=awaiting[:5],
        open_tickets=[row for row in aggregation.flatten_tickets(projects) if row.ticket.status != TicketStatus.CLOSED][:5],
    )
    return render(request, "dashboard.html", context)


@router.get("/projects", response_class=HTMLResponse)
def projects_page(request: Request, db: Session = Depends(get_db), ctx: CompanyContext = Depends(require_company)):
    load = aggregation.load_portfolio(db, ctx.company_id)
    context = page_context(request, db, ctx, projects=load.projects(), failed=load.failed)
    return render(request, "projects.html", context)


@router.get("/projects/{project_id}", response_class=HTMLResponse)
def project_detail_page(
    project_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    project = ensure_project_access(db, ctx, project_id)
    view = aggregation.build_project(db, project, project_store.list_invoices(db, [project.id]))
    context = page_context(
        request,
        db,
        ctx,
        project=view,
        deliveries=aggregation.flatten_deliveries([view]),
        incident_groups=aggregation.group_incidents(aggregation.flatten_incidents([view])),
        tickets=aggregation.flatten_tickets([view]),
    )
    return render(request, "project_detail.html", context)


@router.get("/deliveries", response_class=HTMLResponse)
def deliveries_page(
    request: Request,
    project: str | None = None,
    q: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    load = aggregation.load_portfolio(db, ctx.company_id)
    projects = load.projects()
    rows = aggregation.flatten_deliveries(projects, project_id=project or None, search=q, status=status or None)
    context = page_context(
        request,
        db,
        ctx,
        rows=rows,
        projects=[p for p in projects if not p.placeholder],
        tabs=DELIVERY_TABS,
        filters={"project": project or "", "q": q or "", "status": status or ""},
    )
    return render(request, "deliveries.html", context)


@router.get("/incidents", response_class=HTMLResponse)
def incidents_page(
    request: Request,
    project: str | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    load = aggregation.load_portfolio(db, ctx.company_id)
    projects = load.projects()
    rows = aggregation.flatten_incidents(projects, project_id=project or None, search=q)
    context = page_context(
        request,
        db,
        ctx,
        groups=aggregation.group_incidents(rows),
        projects=[p for p in projects if not p.placeholder],
        filters={"project": project or "", "q": q or ""},
    )
    return render(request, "incidents.html", context)


@router.get("/tickets", response_class=HTMLResponse)
def tickets_page(
    request: Request,
    project: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    load = aggregation.load_portfolio(db, ctx.company_id)
    projects = load.projects()
    rows = aggregation.flatten_tickets(projects, project_id=project or None, status=status or None)
    context = page_context(
        request,
        db,
        ctx,
        rows=rows,
        projects=[p for p in projects if not p.placeholder],
        statuses=(TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED),
        filters={"project": project or "", "status": status or ""},
    )
    return render(request, "tickets.html", context)


def _visible_ticket(db: Session, ctx: CompanyContext, project_id: str, ticket_id: str):
    ensure_project_access(db, ctx, project_id)
    ticket = ticket_store.get_ticket(db, project_id, ticket_id)
    if ticket is None or not ticket.client_visible:
        raise NotFound("Ticket no encontrado")
    return ticket


@router.get("/tickets/{project_id}/{ticket_id}", response_class=HTMLResponse)
def ticket_chat_page(
    project_id: str,
    ticket_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    ticket = _visible_ticket(db, ctx, project_id, ticket_id)
    messages = [message_payload(m, ctx.current.uid) for m in ticket_store.list_messages(db, project_id, ticket_id)]
    context = page_context(
        request,
        db,
        ctx,
        ticket=ticket,
        ticket_status=TicketStatus.parse(ticket.status),
        project_id=project_id,
        messages=messages,
        last_id=messages[-1]["id"] if messages else 0,
        poll_seconds=settings.CHAT_POLL_SECONDS,
    )
    return render(request, "ticket_chat.html", context)


@router.post("/tickets/{project_id}/{ticket_id}/messages")
def ticket_post_message(
    project_id: str,
    ticket_id: str,
    request: Request,
    content: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    ticket = _visible_ticket(db, ctx, project_id, ticket_id)
    try:
        ticket_store.post_message(db, ticket, ctx.current.user, content)
    except ValueError:
        push_notice(request, Notice.error("El mensaje no puede estar vacío"))
    return RedirectResponse(url=f"/tickets/{project_id}/{ticket_id}", status_code=303)


@router.get("/billing", response_class=HTMLResponse)
def billing_page(
    request: Request,
    status: str | None = None,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    load = aggregation.load_portfolio(db, ctx.company_id)
    rows = aggregation.flatten_invoices(load.projects(), status=status or None)
    currency = invoices_currency([row.invoice for row in rows], ctx.company.currency or settings.DEFAULT_CURRENCY)
    context = page_context(
        request,
        db,
        ctx,
        rows=rows,
        statuses=[s for s in InvoiceStatus if s != InvoiceStatus.UNKNOWN],
        filters={"status": status or ""},
        outstanding=format_money(aggregation.outstanding_amount(rows), currency),
        total=format_money(sum((row.amount for row in rows), 0), currency),
    )
    return render(request, "billing.html", context)


@router.post("/company/select")
def company_select(
    request: Request,
    company_id: str = Form(""),
    next: str = Form("/"),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    if account_store.get_membership(db, ctx.current.uid, company_id) is None:
        push_notice(request, Notice.error("No tienes acceso a esta empresa"))
    else:
        select_company(request, company_id)
    return RedirectResponse(url=safe_redirect_target(next), status_code=303)
