from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, NotFound
from ..core.security import decode_token
from ..crud import accounts as account_store
from ..crud import projects as project_store
from ..db.session import get_db
from ..middlewares import company_ctx_var, principal_ctx_var
from ..models.company import Company, CompanyMembership, User
from ..models.project import Project
from .ui_auth import selected_company_id, session_user


@dataclass
class CurrentUser:
    user: User
    scheme: str
    id_token: str | None = None
    # Company pinned into an API token, if any.
    company_id: str | None = None

    @property
    def uid(self) -> str:
        return self.user.uid


@dataclass
class CompanyContext:
    current: CurrentUser
    company: Company
    membership: CompanyMembership

    @property
    def company_id(self) -> str:
        return self.company.id

    @property
    def is_admin(self) -> bool:
        return self.membership.is_admin


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Signed-in user from the session cookie or a bearer access token."""

    data = session_user(request)
    if data is not None:
        user = account_store.get_user(db, data["uid"])
        if user is None:
            raise _unauthorized("Login required")
        _set_principal(request, f"session:{user.uid}")
        return CurrentUser(user=user, scheme="session", id_token=data.get("id_token"))

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type="access")
            except ValueError as exc:
                raise _unauthorized(str(exc)) from exc
            user = account_store.get_user(db, payload.sub)
            if user is None:
                raise _unauthorized("Unknown user")
            _set_principal(request, f"jwt:{user.uid}")
            return CurrentUser(user=user, scheme="jwt", company_id=payload.cid)

    raise _unauthorized("Authorization required")


async def require_company(
    request: Request,
    current: CurrentUser = Depends(require_user),
    x_company_id: str | None = Header(default=None, alias="X-Company-ID"),
    db: Session = Depends(get_db),
) -> CompanyContext:
    """The company the request acts on, checked against the user's memberships.

    Browsers use the company picked in the selector. API clients may name one
    with ``X-Company-ID``, falling back to the company pinned in their token.
    Without either, the first membership is used.
    """

    memberships = account_store.list_memberships(db, current.uid)
    if not memberships:
        raise AccessDenied("El usuario no pertenece a ninguna empresa")
    if current.scheme == "jwt":
        wanted = x_company_id or current.company_id
    else:
        wanted = selected_company_id(request)
    chosen = next(((m, c) for m, c in memberships if c.id == wanted), None) if wanted else None
    if chosen is None:
        if wanted and current.scheme == "jwt":
            raise AccessDenied("No tienes acceso a esta empresa")
        chosen = memberships[0]
    membership, company = chosen
    company_ctx_var.set(company.id)
    request.state.company_id = company.id
    return CompanyContext(current=current, company=company, membership=membership)


def ensure_project_access(db: Session, ctx: CompanyContext, project_id: str) -> Project:
    project = project_store.get_project(db, project_id)
    if project is None:
        raise NotFound("Proyecto no encontrado")
    if project.company_id != ctx.company_id:
        raise AccessDenied("Este proyecto pertenece a otra empresa")
    return project
