"""
Authentication service: orchestrates login, registration, token refresh,
logout and password changes on top of the session issuer and the rotation
protocol.
"""
import sqlite3
import time
from dataclasses import dataclass
from typing import Optional
import logging

from crm.core.config import Settings, settings as default_settings
from crm.core.errors import InvalidCredentialsError
from crm.models.token import SessionTokens
from crm.models.user import User
from crm.repositories.token_store import RefreshTokenStore
from crm.schemas.user import UserCreate
from crm.services.session_service import Clock, SessionIssuer
from crm.services.token_rotation import TokenRotator
from crm.services.user_service import UserService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedSession:
    user: User
    tokens: SessionTokens


class AuthService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        store: RefreshTokenStore,
        config: Optional[Settings] = None,
        clock: Clock = time.time,
    ) -> None:
        config = config or default_settings
        self._conn = conn
        self._users = UserService(conn)
        self._issuer = SessionIssuer(store, config, clock)
        self._rotator = TokenRotator(
            store,
            resolve_role=self._users.resolve_role,
            config=config,
            clock=clock,
            issuer=self._issuer,
        )

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str) -> AuthenticatedSession:
        """Validate credentials and issue a new access + refresh token pair."""
        logger.info("Authenticating user '%s'", identifier)
        user = self._users.find_by_credentials(identifier, password)
        if user is None:
            raise InvalidCredentialsError()
        self._commit()
        tokens = self._issuer.start_session(user.id, user.role.value)
        logger.info("Login successful for user id=%s", user.id)
        return AuthenticatedSession(user=user, tokens=tokens)

    def register(self, data: UserCreate) -> AuthenticatedSession:
        """Create the account, then start a session exactly as login does."""
        user = self._users.register_user(data)
        self._commit()
        tokens = self._issuer.start_session(user.id, user.role.value)
        return AuthenticatedSession(user=user, tokens=tokens)

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> SessionTokens:
        """Exchange a refresh token for a new pair; raises on any failure."""
        result = self._rotator.rotate(refresh_token)
        if not result.ok:
            logger.warning("Refresh rejected: outcome=%s", result.outcome.value)
        return result.unwrap()

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, refresh_token: Optional[str]) -> None:
        """Best-effort revoke; an unknown or missing token is not an error."""
        if not refresh_token:
            logger.info("Logout without refresh token")
            return
        self._rotator.revoke(refresh_token)

    def logout_all(self, user_id: int) -> None:
        """Revoke every refresh token belonging to *user_id*."""
        self._rotator.revoke_all_for_owner(user_id)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Update the password and force re-authentication on every device."""
        self._users.change_password(user_id, current_password, new_password)
        self._commit()
        self._rotator.revoke_all_for_owner(user_id)

    def _commit(self) -> None:
        # The SQLite token store writes through its own connection to the same
        # file; user-row writes must be committed first or it blocks on the lock.
        self._conn.commit()
