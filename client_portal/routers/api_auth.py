from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.errors import AccessDenied, IdentityError
from ..core.security import issue_token_pair, refresh_access_token
from ..db.session import get_db
from ..deps.clients import get_identity_client
from ..schemas.auth import RefreshRequest, TokenRequest, TokenResponse
from ..services import accounts as account_service
from ..services.identity import IdentityClient

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse, summary="Exchange email/password for JWTs")
async def exchange_token(
    payload: TokenRequest,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    try:
        signed_in = await account_service.sign_in(db, identity, payload.email, payload.password)
    except IdentityError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message) from exc
    except AccessDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc
    if payload.company_id and all(company.id != payload.company_id for _, company in signed_in.memberships):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No tienes acceso a esta empresa")
    pair = issue_token_pair(signed_in.user.uid, email=signed_in.user.email, company_id=payload.company_id)
    return TokenResponse(**pair.model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(payload: RefreshRequest):
    try:
        pair = refresh_access_token(payload.refresh_token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return TokenResponse(**pair.model_dump())
