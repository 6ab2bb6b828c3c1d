"""
Refresh token store: maps a refresh-token string to ``{owner_id, family_id}``.

Two interchangeable implementations share one contract:

* ``InMemoryRefreshTokenStore`` keeps records in a process-local dict.
* ``SqliteRefreshTokenStore`` keeps records in the ``refresh_tokens`` table.

Each single operation is atomic. Rotation additionally needs
get-then-remove-then-put to be a critical section per token; ``lock(token)``
provides it through a fixed set of striped locks, so unrelated tokens rarely
contend while two requests presenting the same token always serialise.

Owner-wide revocation does not take those locks. Instead it bumps a per-owner
epoch in the same atomic step that deletes the records, and rotation records
its successor with ``put_if_current``, which refuses once the epoch it read
before the lookup has moved on.
"""
import hashlib
import logging
import threading
from typing import ContextManager, Dict, List, Optional, Protocol

from crm.core.config import Settings
from crm.core.logging_config import log_timing
from crm.db.database import get_db
from crm.models.token import RefreshTokenRecord

logger = logging.getLogger(__name__)

DEFAULT_LOCK_STRIPES = 64


class RefreshTokenStore(Protocol):
    """Contract the rotation protocol relies on."""

    def put(self, token: str, owner_id: int, family_id: str) -> None: ...

    def put_if_current(
        self, token: str, owner_id: int, family_id: str, epoch: int
    ) -> bool: ...

    def owner_epoch(self, owner_id: int) -> int: ...

    def get(self, token: str) -> Optional[RefreshTokenRecord]: ...

    def remove(self, token: str) -> bool: ...

    def remove_all_for_owner(self, owner_id: int) -> int: ...

    def remove_family(self, family_id: str) -> int: ...

    def lock(self, token: str) -> ContextManager: ...


class StripedLocks:
    """A fixed pool of locks; a key always maps to the same lock."""

    def __init__(self, stripes: int = DEFAULT_LOCK_STRIPES) -> None:
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> threading.Lock:
        # Stable across processes, unlike hash() with PYTHONHASHSEED.
        digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
        return self._locks[int.from_bytes(digest, "big") % len(self._locks)]


class InMemoryRefreshTokenStore:
    """Process-local store. Records vanish on restart."""

    def __init__(self, stripes: int = DEFAULT_LOCK_STRIPES) -> None:
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._epochs: Dict[int, int] = {}
        self._mutex = threading.Lock()
        self._stripes = StripedLocks(stripes)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._records)

    def lock(self, token: str) -> threading.Lock:
        return self._stripes.for_key(token)

    @log_timing("TOKEN_STORE")
    def put(self, token: str, owner_id: int, family_id: str) -> None:
        with self._mutex:
            self._records[token] = RefreshTokenRecord(owner_id=owner_id, family_id=family_id)

    @log_timing("TOKEN_STORE")
    def put_if_current(self, token: str, owner_id: int, family_id: str, epoch: int) -> bool:
        with self._mutex:
            if self._epochs.get(owner_id, 0) != epoch:
                return False
            self._records[token] = RefreshTokenRecord(owner_id=owner_id, family_id=family_id)
            return True

    def owner_epoch(self, owner_id: int) -> int:
        with self._mutex:
            return self._epochs.get(owner_id, 0)

    @log_timing("TOKEN_STORE")
    def get(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._mutex:
            return self._records.get(token)

    @log_timing("TOKEN_STORE")
    def remove(self, token: str) -> bool:
        with self._mutex:
            return self._records.pop(token, None) is not None

    @log_timing("TOKEN_STORE")
    def remove_all_for_owner(self, owner_id: int) -> int:
        with self._mutex:
            self._epochs[owner_id] = self._epochs.get(owner_id, 0) + 1
            doomed = [t for t, r in self._records.items() if r.owner_id == owner_id]
            for token in doomed:
                del self._records[token]
        logger.info("Removed %s refresh tokens for owner id=%s", len(doomed), owner_id)
        return len(doomed)

    @log_timing("TOKEN_STORE")
    def remove_family(self, family_id: str) -> int:
        with self._mutex:
            doomed = [t for t, r in self._records.items() if r.family_id == family_id]
            for token in doomed:
                del self._records[token]
        logger.info("Removed %s refresh tokens for family", len(doomed))
        return len(doomed)


class SqliteRefreshTokenStore:
    """Store backed by the ``refresh_tokens`` table; survives restarts."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        stripes: int = DEFAULT_LOCK_STRIPES,
    ) -> None:
        self._database_url = database_url
        self._stripes = StripedLocks(stripes)

    def lock(self, token: str) -> threading.Lock:
        return self._stripes.for_key(token)

    @log_timing("TOKEN_STORE")
    def put(self, token: str, owner_id: int, family_id: str) -> None:
        with get_db(self._database_url) as conn:
            conn.execute(
                """
                INSERT INTO refresh_tokens (token, user_id, family_id)
                VALUES (?, ?, ?)
                ON CONFLICT(token) DO UPDATE SET
                    user_id = excluded.user_id,
                    family_id = excluded.family_id
                """,
                (token, owner_id, family_id),
            )

    @log_timing("TOKEN_STORE")
    def put_if_current(self, token: str, owner_id: int, family_id: str, epoch: int) -> bool:
        # Single statement: the epoch check and the insert cannot be split by
        # a concurrent remove_all_for_owner transaction.
        with get_db(self._database_url) as conn:
            cursor = conn.execute(
                """
                INSERT INTO refresh_tokens (token, user_id, family_id)
                SELECT ?, ?, ?
                WHERE COALESCE(
                    (SELECT epoch FROM refresh_token_epochs WHERE user_id = ?), 0
                ) = ?
                ON CONFLICT(token) DO UPDATE SET
                    user_id = excluded.user_id,
                    family_id = excluded.family_id
                """,
                (token, owner_id, family_id, owner_id, epoch),
            )
        return cursor.rowcount > 0

    def owner_epoch(self, owner_id: int) -> int:
        with get_db(self._database_url) as conn:
            row = conn.execute(
                "SELECT epoch FROM refresh_token_epochs WHERE user_id = ?", (owner_id,)
            ).fetchone()
        return row["epoch"] if row else 0

    @log_timing("TOKEN_STORE")
    def get(self, token: str) -> Optional[RefreshTokenRecord]:
        with get_db(self._database_url) as conn:
            row = conn.execute(
                "SELECT user_id, family_id FROM refresh_tokens WHERE token = ?",
                (token,),
            ).fetchone()
        return RefreshTokenRecord.from_row(row) if row else None

    @log_timing("TOKEN_STORE")
    def remove(self, token: str) -> bool:
        with get_db(self._database_url) as conn:
            cursor = conn.execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))
        return cursor.rowcount > 0

    @log_timing("TOKEN_STORE")
    def remove_all_for_owner(self, owner_id: int) -> int:
        with get_db(self._database_url) as conn:
            conn.execute(
                """
                INSERT INTO refresh_token_epochs (user_id, epoch) VALUES (?, 1)
                ON CONFLICT(user_id) DO UPDATE SET epoch = epoch + 1
                """,
                (owner_id,),
            )
            cursor = conn.execute(
                "DELETE FROM refresh_tokens WHERE user_id = ?", (owner_id,)
            )
        logger.info("Removed %s refresh tokens for owner id=%s", cursor.rowcount, owner_id)
        return cursor.rowcount

    @log_timing("TOKEN_STORE")
    def remove_family(self, family_id: str) -> int:
        with get_db(self._database_url) as conn:
            cursor = conn.execute(
                "DELETE FROM refresh_tokens WHERE family_id = ?", (family_id,)
            )
        logger.info("Removed %s refresh tokens for family", cursor.rowcount)
        return cursor.rowcount


def build_token_store(config: Settings) -> RefreshTokenStore:
    """Instantiate the store selected by ``REFRESH_TOKEN_STORE``."""
    if config.REFRESH_TOKEN_STORE == "sqlite":
        logger.info("Using SQLite refresh token store")
        return SqliteRefreshTokenStore(config.DATABASE_URL)
    logger.info("Using in-memory refresh token store")
    return InMemoryRefreshTokenStore()
