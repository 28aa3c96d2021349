from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, IdentityError
from ..core.jinja import get_templates
from ..db.session import get_db
from ..deps.clients import get_identity_client
from ..deps.ui_auth import clear_session, is_logged_in, safe_redirect_target, start_session
from ..services import accounts as account_service
from ..services.identity import IdentityClient

router = APIRouter()
templates = get_templates()

MSG_RESET_SENT = "Se ha enviado un correo de recuperación. Por favor, revisa tu bandeja de entrada."
MSG_RESET_FAILED = "Error al enviar el correo de recuperación. Verifica que el correo sea correcto."
MSG_RESET_EMAIL = "Por favor, ingresa tu correo electrónico para recuperar tu contraseña."


def _render(request: Request, *, next: str, email: str = "", error: str = "", message: str = "", status_code: int = 200):
    context = {"next": next, "email": email, "error": error, "message": message}
    return templates.TemplateResponse(request, "login.html", context, status_code=status_code)


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = "/"):
    if is_logged_in(request):
        return RedirectResponse(url=safe_redirect_target(next), status_code=302)
    return _render(request, next=safe_redirect_target(next))


@router.post("/login", response_class=HTMLResponse)
async def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form("/"),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    target = safe_redirect_target(next)
    try:
        signed_in = await account_service.sign_in(db, identity, email, password)
    except (IdentityError, AccessDenied) as exc:
        return _render(request, next=target, email=email, error=exc.message, status_code=401)
    start_session(
        request,
        uid=signed_in.user.uid,
        email=signed_in.user.email or signed_in.session.email,
        name=signed_in.user.name,
        id_token=signed_in.session.id_token,
        company_id=signed_in.default_company_id,
    )
    return RedirectResponse(url=target, status_code=302)


@router.post("/login/reset", response_class=HTMLResponse)
async def password_reset(
    request: Request,
    email: str = Form(""),
    identity: IdentityClient = Depends(get_identity_client),
):
    email = email.strip()
    if not email:
        return _render(request, next="/", error=MSG_RESET_EMAIL, status_code=422)
    try:
        await identity.send_password_reset(email)
    except IdentityError:
        return _render(request, next="/", email=email, error=MSG_RESET_FAILED, status_code=400)
    return _render(request, next="/", email=email, message=MSG_RESET_SENT)


@router.get("/logout")
def logout(request: Request):
    clear_session(request)
    return RedirectResponse(url="/login", status_code=302)
