from __future__ import annotations

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    company_id: str | None = Field(default=None, description="Pin one of the user's companies into the tokens")

    model_config = {
        "json_schema_extra": {
            "example": {"email": "cliente@example.com", "password": "secret", "company_id": "acme"}
        },
    }


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "<jwt>",
                "refresh_token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 900,
            }
        }
    }


class RefreshRequest(BaseModel):
    refresh_token: str

    model_config = {
        "json_schema_extra": {
            "example": {"refresh_token": "<jwt>"}
        }
    }
