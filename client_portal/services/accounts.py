"""Sign-in against the identity provider plus the portal's own user checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, IdentityError
from ..crud import accounts as account_store
from ..models.company import Company, CompanyMembership, User
from .identity import IdentityClient, IdentitySession

logger = logging.getLogger(__name__)

MSG_MISSING_FIELDS = "Por favor, introduce email y contraseña"
MSG_NO_PROFILE = "Tu usuario no tiene acceso al portal"
MSG_NO_COMPANY = "Tu usuario no pertenece a ninguna empresa"


@dataclass
class SignedIn:
    session: IdentitySession
    user: User
    memberships: list[tuple[CompanyMembership, Company]]

    @property
    def default_company_id(self) -> str:
        return self.memberships[0][1].id


async def sign_in(db: Session, identity: IdentityClient, email: str, password: str) -> SignedIn:
    """Provider sign-in, then require ``users/{uid}`` with a role and a company."""

    email = (email or "").strip()
    if not email or not password:
        raise IdentityError(MSG_MISSING_FIELDS)
    session = await identity.sign_in(email, password)
    user = account_store.get_user(db, session.uid)
    if user is None or not (user.role or "").strip():
        logger.warning("auth.no_profile", extra={"extra_data": {"uid": session.uid}})
        raise AccessDenied(MSG_NO_PROFILE)
    memberships = account_store.list_memberships(db, user.uid)
    if not memberships:
        logger.warning("auth.no_company", extra={"extra_data": {"uid": user.uid}})
        raise AccessDenied(MSG_NO_COMPANY)
    logger.info("auth.signed_in", extra={"extra_data": {"uid": user.uid}})
    return SignedIn(session=session, user=user, memberships=memberships)


__all__ = ["SignedIn", "sign_in"]
