"""Tests for the password, phone and company billing panels."""

import asyncio
import json
import os
import sys
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from client_portal.db.session import Base
from client_portal.core.errors import AccessDenied, ProfileError
from client_portal.crud.accounts import get_membership
from client_portal.models import Company, CompanyMembership, User
from client_portal.services import profile
from client_portal.services.callables import FunctionsClient
from client_portal.services.identity import IdentityClient


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db_session):
    db_session.add(User(uid="u1", email="ana@example.com", name="Ana", role="client", phone="+34600000000"))
    db_session.add(User(uid="u2", email="eva@example.com", name="Eva", role="client"))
    db_session.add(Company(id="c1", name="Acme"))
    db_session.add_all(
        [
            CompanyMembership(user_uid="u1", company_id="c1", role="admin"),
            CompanyMembership(user_uid="u2", company_id="c1", role="employee"),
        ]
    )
    db_session.commit()
    return db_session


class FakeIdentity:
    """Identity provider that accepts one password and records account changes."""

    def __init__(self, password="old-secret"):
        self.password = password
        self.updates = []
        self.signups = []

    def __call__(self, request):
        body = json.loads(request.content)
        if request.url.path.endswith("accounts:signInWithPassword"):
            if body["password"] != self.password:
                return httpx.Response(400, json={"error": {"message": "INVALID_LOGIN_CREDENTIALS"}})
            return httpx.Response(200, json={"localId": "u1", "email": body["email"], "idToken": "tok-1"})
        if request.url.path.endswith("accounts:update"):
            self.updates.append(body)
            if len(body["password"]) < 6:
                return httpx.Response(400, json={"error": {"message": "WEAK_PASSWORD : too short"}})
            return httpx.Response(200, json={"localId": "u1", "idToken": "tok-2"})
        if request.url.path.endswith("accounts:signUp"):
            self.signups.append(body["email"])
            if body["email"] == "eva@example.com":
                return httpx.Response(400, json={"error": {"message": "EMAIL_EXISTS"}})
            return httpx.Response(200, json={"localId": "u3", "email": body["email"], "idToken": "tok-3"})
        return httpx.Response(404, json={})

    def client(self):
        return IdentityClient("https://identity.test/v1", api_key="k", transport=httpx.MockTransport(self))


def _functions(replies, calls):
    def handler(request):
        name = request.url.path.rsplit("/", 1)[-1]
        calls.append((name, json.loads(request.content)["data"]))
        status, body = replies[name]
        return httpx.Response(status, json=body)

    return FunctionsClient("https://functions.test", transport=httpx.MockTransport(handler))


def test_change_password_checks_inputs():
    identity = FakeIdentity()

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.change_password(identity.client(), "ana@example.com", "old-secret", "", ""))
    assert excinfo.value.message == profile.MSG_REQUIRED

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.change_password(identity.client(), "ana@example.com", "old-secret", "a1b2c3", "a1b2c4"))
    assert excinfo.value.message == profile.MSG_MISMATCH
    assert identity.updates == []


def test_change_password_verifies_current_password():
    identity = FakeIdentity()

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.change_password(identity.client(), "ana@example.com", "wrong", "n3w-pass", "n3w-pass"))

    assert excinfo.value.message == profile.MSG_WRONG_PASSWORD
    assert identity.updates == []


def test_change_password_returns_new_token():
    identity = FakeIdentity()

    token = asyncio.run(
        profile.change_password(identity.client(), "ana@example.com", "old-secret", "n3w-pass", "n3w-pass")
    )

    assert token == "tok-2"
    assert identity.updates == [{"idToken": "tok-1", "password": "n3w-pass", "returnSecureToken": True}]


def test_change_password_reports_weak_password():
    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.change_password(FakeIdentity().client(), "ana@example.com", "old-secret", "abc", "abc"))

    assert excinfo.value.message == "La contraseña debe tener al menos 6 caracteres"


@pytest.mark.parametrize(
    "phone, valid",
    [("+34600000000", True), ("+1", True), ("600000000", False), ("+34 600 000", False), ("+1234567890123456", False)],
)
def test_phone_format(phone, valid):
    assert profile.is_valid_phone(phone) is valid


def test_start_phone_change_sends_code_to_new_number():
    calls = []
    functions = _functions({"startVerification": (200, {"result": {"success": True, "transactionId": "tx"}})}, calls)

    transaction_id = asyncio.run(
        profile.start_phone_change(FakeIdentity().client(), functions, "ana@example.com", "old-secret", " +34611111111 ")
    )

    assert transaction_id == "tx"
    assert calls == [("startVerification", {"phoneNumber": "+34611111111"})]


def test_start_phone_change_rejects_bad_number_before_calling_out():
    calls = []
    functions = _functions({}, calls)

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.start_phone_change(FakeIdentity().client(), functions, "ana@example.com", "old-secret", "611"))

    assert excinfo.value.message == profile.MSG_PHONE_FORMAT
    assert calls == []


def test_confirm_phone_change_updates_user(seeded):
    calls = []
    functions = _functions({"checkVerification": (200, {"result": {"success": True, "status": "approved"}})}, calls)
    user = seeded.get(User, "u1")

    updated = asyncio.run(profile.confirm_phone_change(seeded, functions, user, "+34611111111", "123456", "tx"))

    assert updated.phone == "+34611111111"
    assert calls == [("checkVerification", {"phoneNumber": "+34611111111", "code": "123456", "transactionId": "tx"})]


def test_confirm_phone_change_wrong_code_keeps_phone(seeded):
    functions = _functions({"checkVerification": (200, {"result": {"success": False}})}, [])
    user = seeded.get(User, "u1")

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(profile.confirm_phone_change(seeded, functions, user, "+34611111111", "000000", "tx"))

    assert excinfo.value.message == profile.MSG_CODE_WRONG
    seeded.refresh(user)
    assert user.phone == "+34600000000"


def test_company_billing_admin_only(seeded):
    company = seeded.get(Company, "c1")
    employee = get_membership(seeded, "u2", "c1")

    with pytest.raises(AccessDenied):
        profile.update_company_billing(seeded, employee, company, {"name": "Hack"})

    seeded.refresh(company)
    assert company.name == "Acme"


def test_company_billing_update(seeded):
    company = seeded.get(Company, "c1")
    admin = get_membership(seeded, "u1", "c1")

    with pytest.raises(ProfileError):
        profile.update_company_billing(seeded, admin, company, {"name": "Acme", "billing_email": "nope"})
    with pytest.raises(ProfileError):
        profile.update_company_billing(seeded, admin, company, {"name": "  "})

    updated = profile.update_company_billing(
        seeded,
        admin,
        company,
        {"name": "Acme SL", "tax_id": " B123 ", "billing_email": "facturas@acme.es", "fiscal_address": ""},
    )

    assert updated.name == "Acme SL"
    assert updated.tax_id == "B123"
    assert updated.billing_email == "facturas@acme.es"
    assert updated.fiscal_address is None


def test_add_employee_admin_only(seeded):
    identity = FakeIdentity()
    employee = get_membership(seeded, "u2", "c1")

    with pytest.raises(AccessDenied):
        asyncio.run(
            profile.add_employee(
                seeded,
                identity.client(),
                employee,
                seeded.get(Company, "c1"),
                email="nuevo@acme.es",
                password="s3cret-pass",
                name="Nuevo",
            )
        )

    assert identity.signups == []
    assert seeded.get(User, "u3") is None


def test_add_employee_reports_provider_rejection(seeded):
    identity = FakeIdentity()
    admin = get_membership(seeded, "u1", "c1")

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(
            profile.add_employee(
                seeded,
                identity.client(),
                admin,
                seeded.get(Company, "c1"),
                email="eva@example.com",
                password="s3cret-pass",
                name="Eva",
            )
        )

    assert excinfo.value.message == "Ya existe una cuenta con este email"
    assert identity.signups == ["eva@example.com"]
    assert seeded.query(User).count() == 2


def test_add_employee_requires_every_field(seeded):
    identity = FakeIdentity()
    admin = get_membership(seeded, "u1", "c1")

    with pytest.raises(ProfileError) as excinfo:
        asyncio.run(
            profile.add_employee(
                seeded,
                identity.client(),
                admin,
                seeded.get(Company, "c1"),
                email="nuevo@acme.es",
                password="",
                name="Nuevo",
            )
        )

    assert excinfo.value.message == profile.MSG_REQUIRED
    assert identity.signups == []


def test_add_employee_creates_user_and_membership(seeded):
    identity = FakeIdentity()
    admin = get_membership(seeded, "u1", "c1")

    user = asyncio.run(
        profile.add_employee(
            seeded,
            identity.client(),
            admin,
            seeded.get(Company, "c1"),
            email=" nuevo@acme.es ",
            password="s3cret-pass",
            name=" Nuevo ",
        )
    )

    assert (user.uid, user.email, user.name, user.role) == ("u3", "nuevo@acme.es", "Nuevo", "employee")
    membership = get_membership(seeded, "u3", "c1")
    assert membership.role == "employee"
    assert not membership.is_admin
    assert identity.signups == ["nuevo@acme.es"]
