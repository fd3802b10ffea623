"""Authentication schemas."""
from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    """Token issuance request."""

    identity: str = Field(..., min_length=1, max_length=64)


class RefreshRequest(BaseModel):
    """Token refresh request; the refresh token may come from the cookie instead."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None


class Token(BaseModel):
    """Token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SessionResponse(BaseModel):
    """Claims of the presented access token."""

    session_id: str
    identity: str
    origin_address: str
    expires_at: int
