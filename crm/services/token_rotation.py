"""
Refresh token rotation with reuse detection.

Per refresh-token string the lifecycle is::

    unissued -> active -> consumed | revoked | expired

Terminal states are never left. ``rotate`` reports its result as an explicit
``RotationOutcome`` so callers can branch on every case; ``unwrap`` converts
a failed result into the matching ``AuthenticationError`` subclass.

No retries happen here: a failed rotation means the client must log in again.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from crm.core.config import Settings, settings as default_settings
from crm.core.errors import (
    AuthenticationError,
    ExpiredTokenError,
    InvalidTokenError,
    MalformedTokenError,
    TokenFamilyMismatchError,
)
from crm.core.tokens import TokenPurpose, verify_token
from crm.models.token import SessionTokens
from crm.repositories.token_store import RefreshTokenStore
from crm.services.session_service import Clock, SessionIssuer

logger = logging.getLogger(__name__)

RoleResolver = Callable[[int], Optional[str]]


class RotationOutcome(str, Enum):
    ROTATED = "rotated"
    INVALID = "invalid"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    FAMILY_MISMATCH = "family_mismatch"


# CONSUMED is reported to callers exactly like INVALID so that a replayed
# token is indistinguishable from one that never existed.
_OUTCOME_ERRORS: Dict[RotationOutcome, Type[AuthenticationError]] = {
    RotationOutcome.INVALID: InvalidTokenError,
    RotationOutcome.CONSUMED: InvalidTokenError,
    RotationOutcome.EXPIRED: ExpiredTokenError,
    RotationOutcome.FAMILY_MISMATCH: TokenFamilyMismatchError,
}


@dataclass(frozen=True)
class RotationResult:
    outcome: RotationOutcome
    tokens: Optional[SessionTokens] = None
    owner_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RotationOutcome.ROTATED

    def unwrap(self) -> SessionTokens:
        """Return the new pair or raise the error matching the outcome."""
        if self.ok and self.tokens is not None:
            return self.tokens
        raise _OUTCOME_ERRORS.get(self.outcome, InvalidTokenError)()


def _subject(claims: Dict[str, Any]) -> Optional[int]:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None


class TokenRotator:
    """Validates presented refresh tokens and exchanges them for a new pair."""

    def __init__(
        self,
        store: RefreshTokenStore,
        resolve_role: RoleResolver,
        config: Optional[Settings] = None,
        clock: Clock = time.time,
        issuer: Optional[SessionIssuer] = None,
    ) -> None:
        self._store = store
        self._resolve_role = resolve_role
        self._config = config or default_settings
        self._clock = clock
        self._issuer = issuer or SessionIssuer(store, self._config, clock)

    def rotate(self, presented: str) -> RotationResult:
        # 1. Signature, structure and expiry.
        try:
            claims = verify_token(
                presented,
                self._config.REFRESH_TOKEN_SECRET,
                now=self._clock(),
                algorithm=self._config.ALGORITHM,
            )
        except ExpiredTokenError:
            self._store.remove(presented)
            logger.info("Expired refresh token presented; record cleaned up")
            return RotationResult(RotationOutcome.EXPIRED)
        except MalformedTokenError:
            return RotationResult(RotationOutcome.INVALID)

        owner_id = _subject(claims)
        family_id = claims.get("family_id")
        if (
            claims.get("type") != TokenPurpose.REFRESH.value
            or owner_id is None
            or not isinstance(family_id, str)
        ):
            logger.warning("Refresh token has unexpected claims")
            return RotationResult(RotationOutcome.INVALID)

        with self._store.lock(presented):
            # 2. The record must still exist (not consumed or revoked). The
            # epoch is read first so an owner-wide revocation landing after
            # the lookup is still seen when the successor is recorded.
            epoch = self._store.owner_epoch(owner_id)
            record = self._store.get(presented)
            if record is None:
                logger.warning("Unknown or already used refresh token for user id=%s", owner_id)
                return RotationResult(RotationOutcome.CONSUMED, owner_id=owner_id)

            # 3. Store and token must agree on lineage.
            if record.family_id != family_id or record.owner_id != owner_id:
                logger.error("Refresh token family mismatch for user id=%s", owner_id)
                if self._config.REVOKE_FAMILY_ON_MISMATCH:
                    self._store.remove_family(record.family_id)
                    self._store.remove_family(family_id)
                return RotationResult(RotationOutcome.FAMILY_MISMATCH, owner_id=owner_id)

            # 4. Consume before issuing the successor.
            self._store.remove(presented)
            role = self._resolve_role(owner_id)
            if role is None:
                logger.warning("Refresh token owner id=%s no longer active", owner_id)
                return RotationResult(RotationOutcome.INVALID, owner_id=owner_id)

            access_token = self._issuer.issue_access_token(owner_id, role)
            refresh = self._issuer.sign_refresh_token(owner_id, family_id)
            if not self._store.put_if_current(refresh.token, owner_id, family_id, epoch):
                logger.warning(
                    "Sessions of user id=%s revoked during rotation; successor dropped",
                    owner_id,
                )
                return RotationResult(RotationOutcome.CONSUMED, owner_id=owner_id)

        logger.info("Rotated refresh token for user id=%s", owner_id)
        return RotationResult(
            RotationOutcome.ROTATED,
            tokens=SessionTokens(
                access_token=access_token,
                refresh_token=refresh.token,
                family_id=refresh.family_id,
            ),
            owner_id=owner_id,
        )

    def revoke(self, token: str) -> bool:
        with self._store.lock(token):
            removed = self._store.remove(token)
        logger.info("Refresh token revoked=%s", removed)
        return removed

    def revoke_all_for_owner(self, owner_id: int) -> int:
        count = self._store.remove_all_for_owner(owner_id)
        logger.info("Revoked %s refresh tokens for user id=%s", count, owner_id)
        return count
