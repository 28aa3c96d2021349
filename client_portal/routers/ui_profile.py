from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, ProfileError
from ..db.session import get_db
from ..deps.auth import CompanyContext, require_company
from ..deps.clients import get_functions_client, get_identity_client
from ..deps.ui_auth import (
    drop_phone_change,
    load_phone_change,
    push_notice,
    require_ui_session,
    save_phone_change,
    update_id_token,
)
from ..schemas.notice import Notice
from ..services import profile as profile_service
from ..services.callables import FunctionsClient
from ..services.identity import IdentityClient
from .ui import page_context, render

router = APIRouter(prefix="/profile", dependencies=[Depends(require_ui_session)])


def _back() -> RedirectResponse:
    return RedirectResponse(url="/profile", status_code=303)


@router.get("", response_class=HTMLResponse)
def profile_page(request: Request, db: Session = Depends(get_db), ctx: CompanyContext = Depends(require_company)):
    context = page_context(request, db, ctx, phone_change=load_phone_change(request))
    return render(request, "profile.html", context)


@router.post("/password")
async def profile_password(
    request: Request,
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
    ctx: CompanyContext = Depends(require_company),
    identity: IdentityClient = Depends(get_identity_client),
):
    try:
        token = await profile_service.change_password(
            identity, ctx.current.user.email, current_password, new_password, confirm_password
        )
    except ProfileError as exc:
        push_notice(request, Notice.error(exc.message))
        return _back()
    update_id_token(request, token)
    push_notice(request, Notice.success("Contraseña actualizada", "La contraseña se ha actualizado correctamente"))
    return _back()


@router.post("/phone")
async def profile_phone_start(
    request: Request,
    current_password: str = Form(""),
    phone: str = Form(""),
    ctx: CompanyContext = Depends(require_company),
    identity: IdentityClient = Depends(get_identity_client),
    functions: FunctionsClient = Depends(get_functions_client),
):
    try:
        transaction_id = await profile_service.start_phone_change(
            identity, functions, ctx.current.user.email, current_password, phone
        )
    except ProfileError as exc:
        push_notice(request, Notice.error(exc.message))
        return _back()
    save_phone_change(request, phone.strip(), transaction_id)
    push_notice(request, Notice.success("Código enviado", "Se ha enviado un código de verificación a tu nuevo número"))
    return _back()


@router.post("/phone/verify")
async def profile_phone_verify(
    request: Request,
    code: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    functions: FunctionsClient = Depends(get_functions_client),
):
    pending = load_phone_change(request)
    if pending is None:
        push_notice(request, Notice.error("No hay un cambio de teléfono en curso"))
        return _back()
    try:
        await profile_service.confirm_phone_change(
            db, functions, ctx.current.user, pending["phone"], code, pending["transaction_id"]
        )
    except ProfileError as exc:
        push_notice(request, Notice.error(exc.message, title="Error de verificación"))
        return _back()
    drop_phone_change(request)
    push_notice(request, Notice.success("Teléfono actualizado", "Tu número de teléfono ha sido actualizado correctamente"))
    return _back()


@router.post("/phone/cancel")
def profile_phone_cancel(request: Request):
    drop_phone_change(request)
    return _back()


@router.post("/company")
def profile_company(
    request: Request,
    name: str = Form(""),
    legal_name: str = Form(""),
    tax_id: str = Form(""),
    fiscal_address: str = Form(""),
    billing_email: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
):
    payload = {
        "name": name,
        "legal_name": legal_name,
        "tax_id": tax_id,
        "fiscal_address": fiscal_address,
        "billing_email": billing_email,
    }
    try:
        profile_service.update_company_billing(db, ctx.membership, ctx.company, payload)
    except (AccessDenied, ProfileError) as exc:
        push_notice(request, Notice.error(exc.message))
        return _back()
    push_notice(request, Notice.success("Datos guardados", "Los datos de facturación se han actualizado"))
    return _back()


@router.post("/employees")
async def profile_add_employee(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    db: Session = Depends(get_db),
    ctx: CompanyContext = Depends(require_company),
    identity: IdentityClient = Depends(get_identity_client),
):
    try:
        await profile_service.add_employee(
            db, identity, ctx.membership, ctx.company, email=email, password=password, name=name
        )
    except (AccessDenied, ProfileError) as exc:
        push_notice(request, Notice.error(exc.message))
        return _back()
    push_notice(request, Notice.success("Empleado añadido", "El empleado ha sido añadido correctamente"))
    return _back()
