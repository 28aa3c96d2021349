"""Email/password identity provider over its REST API.

Provider error codes (``INVALID_PASSWORD``, ``TOO_MANY_ATTEMPTS_TRY_LATER :
...``) become ``IdentityError`` with a localized message for the login and
profile pages.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from ..core.config import settings
from ..core.errors import IdentityError

logger = logging.getLogger(__name__)

ERROR_MESSAGES: dict[str, str] = {
    "INVALID_EMAIL": "El formato del email no es válido",
    "EMAIL_NOT_FOUND": "No existe una cuenta con este email",
    "INVALID_PASSWORD": "Contraseña incorrecta",
    "INVALID_LOGIN_CREDENTIALS": "Email o contraseña incorrectos",
    "USER_DISABLED": "Esta cuenta está deshabilitada",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Demasiados intentos. Inténtalo de nuevo más tarde",
    "WEAK_PASSWORD": "La contraseña debe tener al menos 6 caracteres",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "Vuelve a iniciar sesión para continuar",
    "TOKEN_EXPIRED": "Vuelve a iniciar sesión para continuar",
    "EMAIL_EXISTS": "Ya existe una cuenta con este email",
}
DEFAULT_MESSAGE = "Error de autenticación"
UNREACHABLE_MESSAGE = "No se pudo contactar con el servicio de autenticación"


class IdentitySession(BaseModel):
    uid: str
    email: str
    id_token: str
    refresh_token: str | None = None
    expires_in: int = 3600


def provider_code(body: Any) -> str | None:
    """``"TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled"`` → ``TOO_MANY_ATTEMPTS_TRY_LATER``."""

    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    if not isinstance(message, str) or not message.strip():
        return None
    return message.split(" : ", 1)[0].strip()


def localized_message(code: str | None) -> str:
    if not code:
        return DEFAULT_MESSAGE
    return ERROR_MESSAGES.get(code, f"{DEFAULT_MESSAGE}: {code}")


def _session(body: dict[str, Any], email: str) -> IdentitySession:
    return IdentitySession(
        uid=body.get("localId") or "",
        email=body.get("email") or email,
        id_token=body.get("idToken") or "",
        refresh_token=body.get("refreshToken"),
        expires_in=int(body.get("expiresIn") or 3600),
    )


class IdentityClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.IDENTITY_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.IDENTITY_API_KEY
        self.timeout = timeout if timeout is not None else settings.IDENTITY_TIMEOUT
        self.transport = transport

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            logger.error("identity.transport_failed", extra={"extra_data": {"endpoint": endpoint, "error": str(exc)}})
            raise IdentityError(UNREACHABLE_MESSAGE) from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if response.status_code >= 400:
            code = provider_code(body)
            logger.info(
                "identity.rejected",
                extra={"extra_data": {"endpoint": endpoint, "status": response.status_code, "code": code}},
            )
            raise IdentityError(localized_message(code), provider_code=code)
        if not isinstance(body, dict):
            raise IdentityError(DEFAULT_MESSAGE)
        return body

    async def sign_in(self, email: str, password: str) -> IdentitySession:
        body = await self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return _session(body, email)

    async def sign_up(self, email: str, password: str) -> IdentitySession:
        body = await self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return _session(body, email)

    async def send_password_reset(self, email: str) -> None:
        await self._post("accounts:sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    async def change_password(self, id_token: str, new_password: str) -> str | None:
        """Returns the fresh id token the provider issues after the change."""

        body = await self._post(
            "accounts:update",
            {"idToken": id_token, "password": new_password, "returnSecureToken": True},
        )
        return body.get("idToken")


__all__ = [
    "ERROR_MESSAGES",
    "IdentityClient",
    "IdentitySession",
    "localized_message",
    "provider_code",
]
