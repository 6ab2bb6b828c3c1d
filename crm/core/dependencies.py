"""
Request authentication and authorisation.

``authenticate`` turns an ``Authorization`` header into an ``Identity``;
``require_role`` and ``require_owner_or_role`` gate access on it. The FastAPI
dependency wrappers at the bottom plug these into routes and attach the
identity to ``request.state``.
"""
from typing import Callable, Generator, Iterable, Optional, Union
import logging
import time

from fastapi import Depends, Header, Request

from crm.core.config import Settings, settings as default_settings
from crm.core.errors import (
    ForbiddenError,
    MalformedTokenError,
    MissingTokenError,
    WrongTokenPurposeError,
)
from crm.core.tokens import TokenPurpose, verify_token
from crm.db.database import get_db
from crm.models.token import Identity
from crm.models.user import UserRole
from crm.repositories.token_store import RefreshTokenStore
from crm.services.auth_service import AuthService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def authenticate(
    authorization: Optional[str],
    config: Optional[Settings] = None,
    now: Optional[float] = None,
) -> Identity:
    """
    Verify a ``Bearer <token>`` header and return the identity it carries.

    Raises:
        MissingTokenError: header absent or not a bearer credential.
        InvalidTokenError / ExpiredTokenError: from the token codec.
        WrongTokenPurposeError: a valid token that is not an access token.
    """
    config = config or default_settings
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise MissingTokenError()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingTokenError()

    claims = verify_token(
        token,
        config.ACCESS_TOKEN_SECRET,
        now=time.time() if now is None else now,
        algorithm=config.ALGORITHM,
    )
    if claims.get("type") != TokenPurpose.ACCESS.value:
        logger.warning("Non-access token presented as bearer credential")
        raise WrongTokenPurposeError()

    try:
        owner_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise MalformedTokenError()
    role = claims.get("role")
    if not isinstance(role, str):
        raise MalformedTokenError()
    return Identity(owner_id=owner_id, role=role)


# ---------------------------------------------------------------------------
# Authorisation
# ---------------------------------------------------------------------------

def require_role(identity: Identity, allowed: Union[str, Iterable[str]]) -> None:
    """Raise ForbiddenError unless the identity holds one of *allowed*."""
    allowed_roles = [allowed] if isinstance(allowed, str) else list(allowed)
    if identity.role not in allowed_roles:
        logger.warning(
            "User id=%s lacks required roles: %s", identity.owner_id, ", ".join(allowed_roles)
        )
        raise ForbiddenError(f"Requires {' or '.join(allowed_roles)} role")


def require_owner_or_role(
    identity: Identity,
    resource_owner_id: int,
    privileged_roles: Union[str, Iterable[str]] = (UserRole.ADMIN.value,),
) -> None:
    """Allow the resource owner, or anyone holding a privileged role."""
    if identity.owner_id == resource_owner_id:
        return
    privileged = [privileged_roles] if isinstance(privileged_roles, str) else list(privileged_roles)
    if identity.role in privileged:
        return
    logger.warning(
        "User id=%s denied access to resource owned by id=%s",
        identity.owner_id,
        resource_owner_id,
    )
    raise ForbiddenError("Not authorized to access this resource")


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def db_dependency(request: Request) -> Generator:
    """Yield a connection to the app's database for the duration of a request."""
    with get_db(request.app.state.settings.DATABASE_URL) as conn:
        yield conn


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_store(request: Request) -> RefreshTokenStore:
    """The refresh token store injected into the app at startup."""
    return request.app.state.token_store


def get_auth_service(
    request: Request,
    conn=Depends(db_dependency),
) -> AuthService:
    return AuthService(
        conn,
        get_token_store(request),
        config=get_app_settings(request),
        clock=request.app.state.clock,
    )


def get_current_identity(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Identity:
    """Authenticate the bearer token and attach the identity to the request."""
    identity = authenticate(
        authorization,
        get_app_settings(request),
        now=request.app.state.clock(),
    )
    request.state.identity = identity
    logger.info("Authenticated user id=%s", identity.owner_id)
    return identity


def require_roles(*roles: str) -> Callable[..., Identity]:
    """
    Factory that returns a dependency which enforces that the caller has
    one of the specified roles.

    Usage::
        @router.get("/admin-only")
        def admin_only(identity: Identity = Depends(require_roles("admin"))):
            ...
    """
    def _check(identity: Identity = Depends(get_current_identity)) -> Identity:
        require_role(identity, roles)
        return identity

    return _check


require_admin = require_roles(UserRole.ADMIN.value)
