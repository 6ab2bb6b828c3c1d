"""
Authentication endpoints:
  POST /auth/register         – Create an account and start a session
  POST /auth/login            – Email (or username) + password, starts a session
  POST /auth/refresh          – Rotate the refresh token, returns a new access token
  POST /auth/logout           – Revoke the presented refresh token
  POST /auth/logout-all       – Revoke every refresh token of the current user
  POST /auth/change-password  – Change password and sign out everywhere
  GET  /auth/me               – Identity carried by the current access token

Access tokens are returned in the JSON body. Refresh tokens only travel in an
HttpOnly cookie scoped to the refresh endpoint.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Request, Response, status

from crm.api.error_handling import service_error_response
from crm.core.config import Settings
from crm.core.dependencies import get_app_settings, get_auth_service, get_current_identity
from crm.core.errors import AuthenticationError, MissingTokenError
from crm.models.token import Identity
from crm.schemas.token import AccessToken, AuthResponse, ErrorResponse, RefreshTokenRequest
from crm.schemas.user import IdentityResponse, LoginRequest, PasswordChange, UserCreate, UserResponse
from crm.services.auth_service import AuthenticatedSession, AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

UNAUTHORIZED = {
    401: {"model": ErrorResponse, "description": "Missing, invalid or expired credentials"},
}


# ---------------------------------------------------------------------------
# Cookie transport
# ---------------------------------------------------------------------------

def set_refresh_cookie(response: Response, token: str, config: Settings) -> None:
    response.set_cookie(
        key=config.REFRESH_COOKIE_NAME,
        value=token,
        max_age=config.refresh_token_ttl_seconds,
        path=config.REFRESH_COOKIE_PATH,
        httponly=True,
        samesite="lax",
        secure=config.secure_cookies,
    )


def clear_refresh_cookie(response: Response, config: Settings) -> None:
    response.delete_cookie(
        key=config.REFRESH_COOKIE_NAME,
        path=config.REFRESH_COOKIE_PATH,
        httponly=True,
        samesite="lax",
        secure=config.secure_cookies,
    )


def _presented_refresh_token(
    request: Request, body: Optional[RefreshTokenRequest], config: Settings
) -> Optional[str]:
    return request.cookies.get(config.REFRESH_COOKIE_NAME) or (
        body.refresh_token if body else None
    )


def _session_response(
    session: AuthenticatedSession, response: Response, config: Settings
) -> AuthResponse:
    set_refresh_cookie(response, session.tokens.refresh_token, config)
    return AuthResponse(
        access_token=session.tokens.access_token,
        expires_in=config.access_token_ttl_seconds,
        user=UserResponse.model_validate(session.user),
    )


# ---------------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account and start a session",
    responses={409: {"model": ErrorResponse, "description": "Email or username taken"}},
)
def register(
    data: UserCreate,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    """
    Create a new account with the **user** role and log it in.

    Password rules: >= 8 characters, at least one uppercase letter and one digit.
    """
    logger.info("Registration requested for username=%s", data.username)
    return _session_response(service.register(data), response, config)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login with email (or username) and password",
    responses=UNAUTHORIZED,
)
def login(
    credentials: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    """
    Returns a short-lived **access token** (15 min by default) in the body
    and sets a long-lived **refresh token** (7 days) as an HttpOnly cookie.
    """
    logger.info("Login requested for %s", credentials.email)
    return _session_response(
        service.login(credentials.email, credentials.password), response, config
    )


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

@router.post(
    "/refresh",
    response_model=AccessToken,
    summary="Exchange the refresh token for a new access/refresh pair",
    responses=UNAUTHORIZED,
)
def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    """
    Single-use rotation: the presented refresh token is invalidated and a new
    one is set. On any failure the cookie is cleared and the client must log
    in again.
    """
    presented = _presented_refresh_token(request, body, config)
    try:
        if not presented:
            raise MissingTokenError("No refresh token provided")
        tokens = service.refresh(presented)
    except AuthenticationError as exc:
        logger.warning("Refresh failed: %s", exc.error_code)
        failure = service_error_response(exc)
        clear_refresh_cookie(failure, config)
        return failure

    set_refresh_cookie(response, tokens.refresh_token, config)
    return AccessToken(
        access_token=tokens.access_token,
        expires_in=config.access_token_ttl_seconds,
    )


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke the provided refresh token",
)
def logout(
    request: Request,
    body: Optional[RefreshTokenRequest] = None,
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    """Always succeeds, even if the token was already invalid."""
    service.logout(_presented_refresh_token(request, body, config))
    result = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(result, config)
    return result


@router.post(
    "/logout-all",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke all refresh tokens for the current user",
    responses=UNAUTHORIZED,
)
def logout_all(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    """
    Revoke **every** refresh token issued to the current user ("sign out
    everywhere"). Access tokens already issued stay valid until they expire.
    """
    logger.info("Logout all requested for user id=%s", identity.owner_id)
    service.logout_all(identity.owner_id)
    result = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(result, config)
    return result


@router.post(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password and revoke every session",
    responses=UNAUTHORIZED,
)
def change_password(
    data: PasswordChange,
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_app_settings),
):
    service.change_password(identity.owner_id, data.current_password, data.new_password)
    result = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(result, config)
    return result


@router.get(
    "/me",
    response_model=IdentityResponse,
    summary="Identity carried by the current access token",
    responses=UNAUTHORIZED,
)
def get_me(identity: Identity = Depends(get_current_identity)):
    return IdentityResponse(user_id=identity.owner_id, role=identity.role)
