"""Security and company panels of the profile page."""

from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, CallableError, IdentityError, ProfileError
from ..crud import accounts as account_store
from ..models.company import Company, CompanyMembership, User
from .callables import FunctionsClient
from .identity import IdentityClient

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+\d{1,15}$")

MSG_REQUIRED = "Por favor, completa todos los campos"
MSG_MISMATCH = "Las contraseñas no coinciden"
MSG_WRONG_PASSWORD = "La contraseña es incorrecta"
MSG_PASSWORD_FAILED = "No se pudo actualizar la contraseña"
MSG_PHONE_FORMAT = "El número debe estar en formato internacional"
MSG_SEND_FAILED = "No se pudo enviar el código de verificación"
MSG_CODE_REQUIRED = "Por favor, ingresa el código de verificación"
MSG_CODE_WRONG = "El código de verificación es incorrecto"
MSG_UNEXPECTED = "Ha ocurrido un error inesperado"
MSG_EMAIL_FORMAT = "El email de facturación no es válido"
MSG_EMPLOYEE_FAILED = "No se pudo añadir el empleado"


def is_valid_phone(phone: str | None) -> bool:
    return bool(PHONE_PATTERN.match((phone or "").strip()))


async def _verify_current_password(identity: IdentityClient, email: str, password: str):
    try:
        return await identity.sign_in(email, password)
    except IdentityError as exc:
        logger.info("profile.password_check_failed", extra={"extra_data": {"code": exc.provider_code}})
        raise ProfileError(MSG_WRONG_PASSWORD) from exc


async def change_password(
    identity: IdentityClient,
    email: str,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> str | None:
    """Returns the id token issued after the change."""

    if not current_password or not new_password or not confirm_password:
        raise ProfileError(MSG_REQUIRED)
    if new_password != confirm_password:
        raise ProfileError(MSG_MISMATCH)
    session = await _verify_current_password(identity, email, current_password)
    try:
        token = await identity.change_password(session.id_token, new_password)
    except IdentityError as exc:
        raise ProfileError(exc.message if exc.provider_code else MSG_PASSWORD_FAILED) from exc
    logger.info("profile.password_changed", extra={"extra_data": {"uid": session.uid}})
    return token


async def start_phone_change(
    identity: IdentityClient,
    functions: FunctionsClient,
    email: str,
    current_password: str,
    new_phone: str,
) -> str:
    """Checks the password and sends a code to ``new_phone``; returns the transaction id."""

    phone = (new_phone or "").strip()
    if not current_password or not phone:
        raise ProfileError(MSG_REQUIRED)
    if not is_valid_phone(phone):
        raise ProfileError(MSG_PHONE_FORMAT)
    await _verify_current_password(identity, email, current_password)
    try:
        result = await functions.start_verification(phone)
    except CallableError as exc:
        raise ProfileError(MSG_UNEXPECTED) from exc
    if not result.success or not result.transaction_id:
        raise ProfileError(result.error or MSG_SEND_FAILED)
    return result.transaction_id


async def confirm_phone_change(
    db: Session,
    functions: FunctionsClient,
    user: User,
    new_phone: str,
    code: str,
    transaction_id: str,
) -> User:
    if not (code or "").strip():
        raise ProfileError(MSG_CODE_REQUIRED)
    if not transaction_id:
        raise ProfileError(MSG_SEND_FAILED)
    phone = (new_phone or "").strip()
    try:
        result = await functions.check_verification(phone, code.strip(), transaction_id)
    except CallableError as exc:
        raise ProfileError(exc.message or MSG_UNEXPECTED) from exc
    if not result.success:
        raise ProfileError(result.error or MSG_CODE_WRONG)
    updated = account_store.set_user_phone(db, user, phone)
    logger.info("profile.phone_changed", extra={"extra_data": {"uid": user.uid}})
    return updated


def update_company_billing(
    db: Session,
    membership: CompanyMembership | None,
    company: Company,
    payload: dict,
) -> Company:
    if membership is None or not membership.is_admin:
        raise AccessDenied("Solo los administradores pueden editar los datos de facturación")
    fields = {key: payload[key] for key in account_store.BILLING_FIELDS if key in payload}
    email = (fields.get("billing_email") or "").strip()
    if email and "@" not in email:
        raise ProfileError(MSG_EMAIL_FORMAT)
    try:
        return account_store.update_company_billing(db, company, fields)
    except ValueError as exc:
        raise ProfileError(str(exc)) from exc


async def add_employee(
    db: Session,
    identity: IdentityClient,
    membership: CompanyMembership | None,
    company: Company,
    *,
    email: str,
    password: str,
    name: str,
) -> User:
    """Creates the provider account, then the user row and its employee membership."""

    if membership is None or not membership.is_admin:
        raise AccessDenied("Solo los administradores pueden añadir empleados")
    email = (email or "").strip()
    name = (name or "").strip()
    if not email or not password or not name:
        raise ProfileError(MSG_REQUIRED)
    try:
        account = await identity.sign_up(email, password)
    except IdentityError as exc:
        raise ProfileError(exc.message if exc.provider_code else MSG_EMPLOYEE_FAILED) from exc
    if not account.uid:
        raise ProfileError(MSG_EMPLOYEE_FAILED)
    user = account_store.create_member(db, uid=account.uid, email=account.email, name=name, company_id=company.id)
    logger.info(
        "profile.employee_added",
        extra={"extra_data": {"uid": user.uid, "company_id": company.id, "by": membership.user_uid}},
    )
    return user


__all__ = [
    "add_employee",
    "change_password",
    "confirm_phone_change",
    "is_valid_phone",
    "start_phone_change",
    "update_company_billing",
]
