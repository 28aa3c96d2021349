"""Users, company memberships and the profile fields the portal may patch."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.company import ROLE_EMPLOYEE, Company, CompanyMembership, User

BILLING_FIELDS = ("name", "legal_name", "tax_id", "fiscal_address", "billing_email")


def get_user(db: Session, uid: str) -> User | None:
    return db.get(User, uid)


def get_company(db: Session, company_id: str) -> Company | None:
    return db.get(Company, company_id)


def list_memberships(db: Session, uid: str) -> list[tuple[CompanyMembership, Company]]:
    stmt = (
        select(CompanyMembership, Company)
        .join(Company, Company.id == CompanyMembership.company_id)
        .where(CompanyMembership.user_uid == uid)
        .order_by(Company.name, Company.id)
    )
    return [(membership, company) for membership, company in db.execute(stmt).all()]


def get_membership(db: Session, uid: str, company_id: str) -> CompanyMembership | None:
    stmt = select(CompanyMembership).where(
        CompanyMembership.user_uid == uid,
        CompanyMembership.company_id == company_id,
    )
    return db.execute(stmt).scalars().first()


def create_member(
    db: Session,
    *,
    uid: str,
    email: str,
    name: str,
    company_id: str,
    role: str = ROLE_EMPLOYEE,
) -> User:
    """New ``users/{uid}`` row plus its membership in ``company_id``."""

    user = User(uid=uid, email=email, name=name, role=ROLE_EMPLOYEE)
    db.add(user)
    db.add(CompanyMembership(user_uid=uid, company_id=company_id, role=role))
    db.commit()
    db.refresh(user)
    return user


def set_user_phone(db: Session, user: User, phone: str) -> User:
    user.phone = phone
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_company_billing(db: Session, company: Company, payload: dict) -> Company:
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValueError("El nombre de la empresa es obligatorio")
        company.name = name
    for field in BILLING_FIELDS[1:]:
        if field in payload:
            setattr(company, field, (payload.get(field) or "").strip() or None)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


__all__ = [
    "BILLING_FIELDS",
    "create_member",
    "get_company",
    "get_membership",
    "get_user",
    "list_memberships",
    "set_user_phone",
    "update_company_billing",
]
