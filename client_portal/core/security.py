"""Signed API tokens for headless clients.

Browsers ride on the session cookie. Scripts exchange email/password at
``/api/v1/auth/token`` for an access/refresh pair; the tokens name the user
(``sub``) and may pin one of the user's companies (``cid``).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "client-portal-api"
ISSUER = "client-portal"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    typ: TokenType
    aud: str
    iss: str
    email: str | None = None
    cid: str | None = None


def _lifetime(token_type: TokenType) -> timedelta:
    if token_type == TokenType.REFRESH:
        return timedelta(days=settings.JWT_REFRESH_TTL_DAYS)
    return timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)


def _sign(claims: dict[str, Any], token_type: TokenType) -> str:
    issued = datetime.now(tz=timezone.utc)
    body = {
        **claims,
        "typ": token_type.value,
        "aud": AUDIENCE,
        "iss": ISSUER,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime(token_type)).timestamp()),
    }
    return jwt.encode(body, settings.JWT_SECRET, algorithm=ALGORITHM)


def issue_token_pair(uid: str, *, email: str | None = None, company_id: str | None = None) -> TokenPair:
    claims: dict[str, Any] = {"sub": uid}
    if email:
        claims["email"] = email
    if company_id:
        claims["cid"] = company_id
    return TokenPair(
        access_token=_sign(claims, TokenType.ACCESS),
        refresh_token=_sign(claims, TokenType.REFRESH),
        expires_in=int(_lifetime(TokenType.ACCESS).total_seconds()),
    )


def decode_token(token: str, *, verify_type: TokenType | str | None = None) -> TokenPayload:
    """Validate signature, audience, issuer and expiry; raises ``ValueError``."""

    try:
        decoded = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
    except ExpiredSignatureError as exc:
        raise ValueError("Token expired") from exc
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        payload = TokenPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
    if verify_type is not None and payload.typ != TokenType(verify_type):
        raise ValueError("Invalid token type")
    return payload


def refresh_access_token(refresh_token: str) -> TokenPair:
    payload = decode_token(refresh_token, verify_type=TokenType.REFRESH)
    return issue_token_pair(payload.sub, email=payload.email, company_id=payload.cid)


__all__ = [
    "TokenPair",
    "TokenPayload",
    "TokenType",
    "decode_token",
    "issue_token_pair",
    "refresh_access_token",
]
