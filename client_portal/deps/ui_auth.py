"""Browser session helpers.

The signed session cookie holds the signed-in user (uid, email, name, the
identity provider's id token), the selected company, pending flash notices
and any approval wizard in progress.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from fastapi import HTTPException, Request, status
from pydantic import ValidationError

from ..schemas.notice import Notice
from ..services.wizard import ApprovalWizard

SESSION_USER = "user"
SESSION_COMPANY = "company_id"
SESSION_NOTICES = "notices"
SESSION_WIZARDS = "wizards"
SESSION_PHONE_CHANGE = "phone_change"


def session_user(request: Request) -> dict[str, Any] | None:
    try:
        data = request.session.get(SESSION_USER)
    except AssertionError:
        # SessionMiddleware is not installed on this app.
        return None
    return data if isinstance(data, dict) and data.get("uid") else None


def is_logged_in(request: Request) -> bool:
    return session_user(request) is not None


def start_session(
    request: Request,
    *,
    uid: str,
    email: str,
    name: str | None,
    id_token: str,
    company_id: str | None,
) -> None:
    request.session.clear()
    request.session[SESSION_USER] = {"uid": uid, "email": email, "name": name, "id_token": id_token}
    request.session[SESSION_COMPANY] = company_id


def update_id_token(request: Request, id_token: str | None) -> None:
    data = session_user(request)
    if data is not None and id_token:
        request.session[SESSION_USER] = {**data, "id_token": id_token}


def clear_session(request: Request) -> None:
    request.session.clear()


def selected_company_id(request: Request) -> str | None:
    value = request.session.get(SESSION_COMPANY)
    return str(value) if value else None


def select_company(request: Request, company_id: str) -> None:
    request.session[SESSION_COMPANY] = company_id
    request.session.pop(SESSION_WIZARDS, None)


def safe_redirect_target(target: str | None) -> str:
    """Same-site path for a post-action redirect, else ``/``."""

    if not target or not target.startswith("/") or target.startswith("//") or "\\" in target:
        return "/"
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return "/"
    return target


async def require_ui_session(request: Request) -> dict[str, Any]:
    """Gate for HTML routes; the 401 is turned into a login redirect."""

    data = session_user(request)
    if data is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return data


# ---- Flash notices


def push_notice(request: Request, notice: Notice) -> None:
    notices = list(request.session.get(SESSION_NOTICES) or [])
    notices.append(notice.model_dump())
    request.session[SESSION_NOTICES] = notices


def push_notices(request: Request, notices: list[Notice]) -> None:
    for notice in notices:
        push_notice(request, notice)


def pop_notices(request: Request) -> list[Notice]:
    raw = request.session.pop(SESSION_NOTICES, None) or []
    notices: list[Notice] = []
    for item in raw:
        try:
            notices.append(Notice.model_validate(item))
        except ValidationError:
            continue
    return notices


# ---- Wizard state, keyed by delivery


def load_wizard(request: Request, delivery_id: str) -> ApprovalWizard | None:
    raw = (request.session.get(SESSION_WIZARDS) or {}).get(delivery_id)
    if not raw:
        return None
    try:
        return ApprovalWizard.model_validate(raw)
    except ValidationError:
        drop_wizard(request, delivery_id)
        return None


def save_wizard(request: Request, wizard: ApprovalWizard) -> None:
    wizards = dict(request.session.get(SESSION_WIZARDS) or {})
    wizards[wizard.delivery_id] = wizard.model_dump(mode="json")
    request.session[SESSION_WIZARDS] = wizards


def drop_wizard(request: Request, delivery_id: str) -> None:
    wizards = dict(request.session.get(SESSION_WIZARDS) or {})
    if wizards.pop(delivery_id, None) is not None:
        request.session[SESSION_WIZARDS] = wizards


# ---- Phone change in progress


def save_phone_change(request: Request, phone: str, transaction_id: str) -> None:
    request.session[SESSION_PHONE_CHANGE] = {"phone": phone, "transaction_id": transaction_id}


def load_phone_change(request: Request) -> dict[str, str] | None:
    data = request.session.get(SESSION_PHONE_CHANGE)
    return data if isinstance(data, dict) and data.get("transaction_id") else None


def drop_phone_change(request: Request) -> None:
    request.session.pop(SESSION_PHONE_CHANGE, None)
