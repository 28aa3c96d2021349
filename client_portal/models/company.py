"""Companies, portal users and the memberships linking them."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint

from ..db.session import Base
from ._ids import new_id

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"


class Company(Base):
    __tablename__ = "companies"

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    crm_id = Column(Text, nullable=True)
    legal_name = Column(Text, nullable=True)
    tax_id = Column(Text, nullable=True)
    fiscal_address = Column(Text, nullable=True)
    billing_email = Column(Text, nullable=True)
    currency = Column(Text, nullable=False, default="EUR")


class User(Base):
    """``users/{uid}``; ``phone`` is the registered OTP contact."""

    __tablename__ = "users"

    uid = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=True)
    role = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)


class CompanyMembership(Base):
    __tablename__ = "company_memberships"
    __table_args__ = (UniqueConstraint("user_uid", "company_id", name="uq_membership"),)

    id = Column(Text, primary_key=True, default=new_id)
    user_uid = Column(Text, ForeignKey("users.uid"), nullable=False, index=True)
    company_id = Column(Text, ForeignKey("companies.id"), nullable=False, index=True)
    role = Column(Text, nullable=False, default=ROLE_EMPLOYEE)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == ROLE_ADMIN


__all__ = ["Company", "CompanyMembership", "ROLE_ADMIN", "ROLE_EMPLOYEE", "User"]
