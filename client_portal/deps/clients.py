"""Remote clients as dependencies so tests can swap in fake transports."""

from __future__ import annotations

from fastapi import Depends

from ..services.callables import FunctionsClient
from ..services.identity import IdentityClient
from .auth import CurrentUser, require_user


def get_identity_client() -> IdentityClient:
    return IdentityClient()


def get_functions_base() -> FunctionsClient:
    return FunctionsClient()


def get_functions_client(
    current: CurrentUser = Depends(require_user),
    base: FunctionsClient = Depends(get_functions_base),
) -> FunctionsClient:
    """Callable client authorized as the signed-in user."""

    return base.with_token(current.id_token)
