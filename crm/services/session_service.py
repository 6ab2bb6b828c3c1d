"""
Session issuer: mints access/refresh token pairs and records refresh tokens.
"""
import logging
import secrets
import time
import uuid
from typing import Callable, Optional

from crm.core.config import Settings, settings as default_settings
from crm.core.tokens import TokenPurpose, issue_token
from crm.models.token import IssuedRefreshToken, SessionTokens
from crm.repositories.token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

FAMILY_ID_BYTES = 16


def new_family_id() -> str:
    """128 random bits, hex encoded."""
    return secrets.token_hex(FAMILY_ID_BYTES)


class SessionIssuer:
    """Creates access and refresh tokens for an authenticated identity."""

    def __init__(
        self,
        store: RefreshTokenStore,
        config: Optional[Settings] = None,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._config = config or default_settings
        self._clock = clock

    def issue_access_token(self, owner_id: int, role: str) -> str:
        return issue_token(
            {
                "sub": str(owner_id),
                "role": role,
                "type": TokenPurpose.ACCESS.value,
                "jti": uuid.uuid4().hex,
            },
            self._config.ACCESS_TOKEN_SECRET,
            self._config.access_token_ttl_seconds,
            now=self._clock(),
            algorithm=self._config.ALGORITHM,
        )

    def sign_refresh_token(
        self, owner_id: int, family_id: Optional[str] = None
    ) -> IssuedRefreshToken:
        """
        Sign a refresh token without recording it.

        A new family is started when *family_id* is omitted; rotation passes
        the existing one so the chain stays in a single family.
        """
        family_id = family_id or new_family_id()
        token = issue_token(
            {
                "sub": str(owner_id),
                "type": TokenPurpose.REFRESH.value,
                "family_id": family_id,
                "jti": uuid.uuid4().hex,
            },
            self._config.REFRESH_TOKEN_SECRET,
            self._config.refresh_token_ttl_seconds,
            now=self._clock(),
            algorithm=self._config.ALGORITHM,
        )
        return IssuedRefreshToken(token=token, family_id=family_id)

    def issue_refresh_token(
        self, owner_id: int, family_id: Optional[str] = None
    ) -> IssuedRefreshToken:
        """Sign a refresh token and record it in the store."""
        issued = self.sign_refresh_token(owner_id, family_id)
        self._store.put(issued.token, owner_id, issued.family_id)
        return issued

    def start_session(self, owner_id: int, role: str) -> SessionTokens:
        """Issue a fresh pair under a new family (login and registration)."""
        access_token = self.issue_access_token(owner_id, role)
        refresh = self.issue_refresh_token(owner_id)
        logger.info("Started session for user id=%s", owner_id)
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh.token,
            family_id=refresh.family_id,
        )
