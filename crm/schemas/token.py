"""
Pydantic schemas for token request/response validation.
"""
from typing import Optional

from pydantic import BaseModel

from crm.schemas.user import UserResponse


class AccessToken(BaseModel):
    """Body returned by /auth/refresh. The refresh token travels as a cookie."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(AccessToken):
    """Body returned by /auth/login and /auth/register."""

    user: UserResponse


class RefreshTokenRequest(BaseModel):
    """Optional body for /auth/refresh and /auth/logout when no cookie is sent."""

    refresh_token: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    status: int
