"""Approval wizard and rejection dialog for a single delivery.

The wizard lives in the session between requests. Every form action loads it,
applies one transition (local or remote) and redirects back to the wizard
page, which renders whatever step the wizard is now on.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.errors import InvalidTransition, NotFound, WizardError
from ..core.lifecycle import ACTION_REJECT, client_actions
from ..core.statuses import DELIVERY_RELATED_INCIDENTS, IncidentStatus, PaymentMethod
from ..crud import projects as project_store
from ..db.session import get_db
from ..deps.auth import CompanyContext, ensure_project_access, require_company
from ..deps.clients import get_functions_client
from ..deps.ui_auth import drop_wizard, load_wizard, push_notice, push_notices, require_ui_session, save_wizard
from ..schemas.notice import Notice
from ..services import approval
from ..services import wizard as wz
from ..services.billing import format_money, invoices_for_delivery
from ..services.callables import FunctionsClient
from .ui import page_context, render

router = APIRouter(prefix="/deliveries", dependencies=[Depends(require_ui_session)])

STEP_TITLES = {
    "confirm": "Confirmación de Entrega",
    "billing": "Facturación",
    "install": "Instalación",
    "done": "Instalación solicitada",
}
STEP_NUMBERS = {"confirm": 1, "billing": 2, "install": 3, "done": 3}


def _wizard_url(project_id: str, delivery_id: str) -> str:
    return f"/deliveries/{project_id}/{delivery_id}/approve"


def _back_to_wizard(project_id: str, delivery_id: str) -> RedirectResponse:
    return RedirectResponse(url=_wizard_url(project_id, delivery_id), status_code=303)


def _delivery(db: Session, ctx: CompanyContext, project_id: str, delivery_id: str):
    ensure_project_access(db, ctx, project_id)
    delivery = project_store.get_delivery(db, project_id, delivery_id)
    if delivery is None:
        raise NotFound("Entrega no encontrada")
    return delivery


def _current_wizard(request: Request, db: Session, ctx: CompanyContext, project_id: str, delivery_id: str):
    wizard = load_wizard(request, delivery_id)
    if wizard is not None and wizard.project_id == project_id:
        return wizard
    delivery = _delivery(db, ctx, project_id, delivery_id)
    return wz.open_wizard(delivery)


@router.get("/{project_id}/{delivery_id}/approve", response_class=HTMLResponse)
async def approve_page(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    delivery = _delivery(db, ctx, project_id, delivery_id)
    try:
        wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
        return RedirectResponse(url="/deliveries", status_code=303)

    if isinstance(wizard.state, wz.BillingStep) and not wizard.state.loaded and not wizard.state.error:
        wizard = await approval.load_invoices(wizard, functions)
    save_wizard(request, wizard)

    milestone = project_store.get_milestone(db, project_id, delivery.milestone_id)
    tasks = project_store.milestone_backlog(db, project_id, delivery.milestone_id)
    incidents = [
        incident
        for incident in project_store.list_incidents(db, project_id)
        if IncidentStatus.parse(incident.status) in DELIVERY_RELATED_INCIDENTS
    ]
    project_invoices = project_store.list_invoices(db, [project_id])
    linked = invoices_for_delivery(project_invoices, delivery.milestone_id, [t.id for t in tasks])
    now = datetime.now(timezone.utc)

    billing = None
    if isinstance(wizard.state, wz.BillingStep):
        currency = wz.billing_currency(wizard, delivery.currency or ctx.company.currency)
        billing = {"total": format_money(wz.billing_total(wizard), currency), "currency": currency}

    context = page_context(
        request,
        db,
        ctx,
        wizard=wizard,
        state=wizard.state,
        step_title=STEP_TITLES[wizard.step],
        step_number=STEP_NUMBERS[wizard.step],
        delivery=delivery,
        milestone=milestone,
        tasks=tasks,
        incidents=incidents,
        linked_invoices=linked,
        can_advance=wz.can_advance(wizard),
        needs_otp=wz.needs_otp(wizard),
        can_resend=wz.can_resend(wizard, now),
        resend_wait=wz.resend_wait(wizard, now),
        billing=billing,
        payment_methods=list(PaymentMethod),
        phone=ctx.current.user.phone,
        wizard_url=_wizard_url(project_id, delivery_id),
    )
    return render(request, "approve_wizard.html", context)


@router.post("/{project_id}/{delivery_id}/approve/terms")
def approve_terms(
    project_id: str,
    delivery_id: str,
    request: Request,
    accepted: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard = wz.accept_terms(wizard, accepted in {"1", "on", "true", "yes"})
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/send-code")
async def approve_send_code(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard, notices = await approval.send_code(wizard, functions, ctx.current.user.phone)
    except WizardError as exc:
        notices = [Notice.error(exc.message)]
    push_notices(request, notices)
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/verify")
async def approve_verify(
    project_id: str,
    delivery_id: str,
    request: Request,
    code: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard, notices = await approval.verify_code(
            db, wizard, functions, ctx.current.user.phone, code=code, actor=ctx.current.uid
        )
    except (WizardError, InvalidTransition) as exc:
        notices = [Notice.error(exc.message)]
    push_notices(request, notices)
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/next")
def approve_next(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard = wz.advance(wizard)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/back")
def approve_back(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard = wz.go_back(wizard)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/payment-method")
def approve_payment_method(
    project_id: str,
    delivery_id: str,
    request: Request,
    method: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard = wz.select_payment_method(wizard, method)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/invoices/reload")
async def approve_reload_invoices(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard = await approval.load_invoices(wizard, functions)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/payment-link")
async def approve_payment_link(
    project_id: str,
    delivery_id: str,
    request: Request,
    invoice_id: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    url = None
    try:
        wizard, url = await approval.request_payment_link(wizard, functions, invoice_id)
    except WizardError as exc:
        push_notice(request, Notice.error(exc.message))
    save_wizard(request, wizard)
    if url:
        return RedirectResponse(url=url, status_code=303)
    return _back_to_wizard(project_id, delivery_id)


@router.post("/{project_id}/{delivery_id}/approve/install")
def approve_install(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    wizard = _current_wizard(request, db, ctx, project_id, delivery_id)
    try:
        wizard, notices = approval.confirm_install(db, wizard, actor=ctx.current.uid)
    except (WizardError, InvalidTransition) as exc:
        push_notice(request, Notice.error(exc.message))
        save_wizard(request, wizard)
        return _back_to_wizard(project_id, delivery_id)
    push_notices(request, notices)
    drop_wizard(request, delivery_id)
    return RedirectResponse(url="/deliveries", status_code=303)


@router.post("/{project_id}/{delivery_id}/approve/cancel")
def approve_cancel(project_id: str, delivery_id: str, request: Request):
    drop_wizard(request, delivery_id)
    return RedirectResponse(url="/deliveries", status_code=303)


@router.get("/{project_id}/{delivery_id}/reject", response_class=HTMLResponse)
def reject_page(
    project_id: str,
    delivery_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    delivery = _delivery(db, ctx, project_id, delivery_id)
    if ACTION_REJECT not in client_actions(delivery.status):
        push_notice(request, Notice.error("Esta entrega no se puede rechazar"))
        return RedirectResponse(url="/deliveries", status_code=303)
    context = page_context(request, db, ctx, delivery=delivery, project_id=project_id, error="")
    return render(request, "reject_delivery.html", context)


@router.post("/{project_id}/{delivery_id}/reject")
def reject_submit(
    project_id: str,
    delivery_id: str,
    request: Request,
    message: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    delivery = _delivery(db, ctx, project_id, delivery_id)
    try:
        notice = approval.reject_delivery(db, delivery, message, actor=ctx.current.uid)
    except (WizardError, InvalidTransition) as exc:
        context = page_context(request, db, ctx, delivery=delivery, project_id=project_id, error=exc.message)
        return render(request, "reject_delivery.html", context, status_code=422)
    push_notice(request, notice)
    drop_wizard(request, delivery_id)
    return RedirectResponse(url="/deliveries", status_code=303)
