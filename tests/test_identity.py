"""Tests for provider sign-in, error localization and the portal's user checks."""

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
from client_portal.core.errors import AccessDenied, IdentityError
from client_portal.core.security import decode_token, issue_token_pair, refresh_access_token
from client_portal.models import Company, CompanyMembership, User
from client_portal.services import accounts
from client_portal.services.identity import IdentityClient, localized_message, provider_code


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


def _identity(handler):
    return IdentityClient("https://identity.test/v1", api_key="k", transport=httpx.MockTransport(handler))


def _signed_in(uid="u1"):
    def handler(request):
        return httpx.Response(
            200,
            json={"localId": uid, "email": "ana@example.com", "idToken": "tok", "refreshToken": "ref", "expiresIn": "3600"},
        )

    return handler


def _rejected(message):
    def handler(request):
        return httpx.Response(400, json={"error": {"code": 400, "message": message}})

    return handler


def test_provider_code_strips_detail():
    assert provider_code({"error": {"message": "TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled"}}) == (
        "TOO_MANY_ATTEMPTS_TRY_LATER"
    )
    assert provider_code({"error": {"message": "INVALID_PASSWORD"}}) == "INVALID_PASSWORD"
    assert provider_code({"error": "nope"}) is None
    assert provider_code(None) is None


def test_localized_message():
    assert localized_message("INVALID_PASSWORD") == "Contraseña incorrecta"
    assert localized_message("SOMETHING_NEW") == "Error de autenticación: SOMETHING_NEW"
    assert localized_message(None) == "Error de autenticación"


def test_sign_in_posts_credentials_with_key():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["key"] = request.url.params.get("key")
        seen["body"] = json.loads(request.content)
        return _signed_in()(request)

    session = asyncio.run(_identity(handler).sign_in("ana@example.com", "secret"))

    assert session.uid == "u1"
    assert session.id_token == "tok"
    assert seen["path"] == "/v1/accounts:signInWithPassword"
    assert seen["key"] == "k"
    assert seen["body"] == {"email": "ana@example.com", "password": "secret", "returnSecureToken": True}


def test_sign_in_rejection_is_localized():
    with pytest.raises(IdentityError) as excinfo:
        asyncio.run(_identity(_rejected("USER_DISABLED")).sign_in("ana@example.com", "x"))

    assert excinfo.value.provider_code == "USER_DISABLED"
    assert excinfo.value.message == "Esta cuenta está deshabilitada"


def test_send_password_reset_request_type():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"email": "ana@example.com"})

    asyncio.run(_identity(handler).send_password_reset("ana@example.com"))

    assert seen["body"] == {"requestType": "PASSWORD_RESET", "email": "ana@example.com"}


def test_portal_sign_in_requires_fields(db_session):
    with pytest.raises(IdentityError) as excinfo:
        asyncio.run(accounts.sign_in(db_session, _identity(_signed_in()), "  ", "secret"))

    assert excinfo.value.message == "Por favor, introduce email y contraseña"


def test_portal_sign_in_requires_profile_and_company(db_session):
    db_session.add(User(uid="u1", email="ana@example.com", name="Ana", role=""))
    db_session.commit()

    with pytest.raises(AccessDenied):
        asyncio.run(accounts.sign_in(db_session, _identity(_signed_in()), "ana@example.com", "secret"))

    user = db_session.get(User, "u1")
    user.role = "client"
    db_session.commit()
    with pytest.raises(AccessDenied) as excinfo:
        asyncio.run(accounts.sign_in(db_session, _identity(_signed_in()), "ana@example.com", "secret"))
    assert excinfo.value.message == accounts.MSG_NO_COMPANY


def test_portal_sign_in_picks_first_company(db_session):
    db_session.add(User(uid="u1", email="ana@example.com", name="Ana", role="client"))
    db_session.add_all([Company(id="c2", name="Zeta"), Company(id="c1", name="Acme")])
    db_session.add_all(
        [
            CompanyMembership(user_uid="u1", company_id="c2"),
            CompanyMembership(user_uid="u1", company_id="c1", role="admin"),
        ]
    )
    db_session.commit()

    signed_in = asyncio.run(accounts.sign_in(db_session, _identity(_signed_in()), "ana@example.com", "secret"))

    assert signed_in.user.uid == "u1"
    assert signed_in.default_company_id == "c1"
    assert signed_in.session.id_token == "tok"


def test_api_tokens_round_trip_claims():
    pair = issue_token_pair("u1", email="ana@example.com")

    access = decode_token(pair.access_token, verify_type="access")
    assert access.sub == "u1"
    assert access.email == "ana@example.com"
    with pytest.raises(ValueError):
        decode_token(pair.access_token, verify_type="refresh")
    with pytest.raises(ValueError):
        decode_token("not-a-token")

    refreshed = refresh_access_token(pair.refresh_token)
    assert decode_token(refreshed.access_token, verify_type="access").sub == "u1"


def test_api_tokens_carry_pinned_company():
    pair = issue_token_pair("u1", company_id="c1")

    assert decode_token(pair.access_token).cid == "c1"
    assert decode_token(refresh_access_token(pair.refresh_token).access_token).cid == "c1"
    assert decode_token(issue_token_pair("u1").access_token).cid is None
