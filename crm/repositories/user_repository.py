"""
Repository layer for User persistence.
All SQL for the `users` table lives here.
"""
import sqlite3
from datetime import datetime, timezone
from typing import Optional
import logging

from crm.core.errors import ConflictError
from crm.core.logging_config import log_timing
from crm.models.user import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Data access layer for user records."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @log_timing("DB_OP")
    def get_by_id(self, user_id: int) -> Optional[User]:
        """Return a user by id or None if missing."""
        logger.trace("Fetching user by id=%s", user_id)
        row = self._conn.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return User.from_row(row) if row else None

    @log_timing("DB_OP")
    def get_by_email(self, email: str) -> Optional[User]:
        logger.trace("Fetching user by email=%s", email)
        row = self._conn.execute(
            "SELECT * FROM users WHERE email = ? COLLATE NOCASE", (email,)
        ).fetchone()
        return User.from_row(row) if row else None

    @log_timing("DB_OP")
    def get_by_username(self, username: str) -> Optional[User]:
        logger.trace("Fetching user by username=%s", username)
        row = self._conn.execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        ).fetchone()
        return User.from_row(row) if row else None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @log_timing("DB_OP")
    def create(
        self,
        username: str,
        email: str,
        hashed_password: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Insert a new user row and return the created user."""
        logger.info("Creating user record username=%s", username)
        try:
            cursor = self._conn.execute(
                """
                INSERT INTO users (username, email, hashed_password, role)
                VALUES (?, ?, ?, ?)
                """,
                (username, email, hashed_password, role.value),
            )
        except sqlite3.IntegrityError as exc:
            # A concurrent registration won the race past the service checks.
            logger.warning("User insert rejected by constraint: %s", exc)
            if "users.email" in str(exc):
                raise ConflictError("Email is already registered") from exc
            raise ConflictError("Username is already taken") from exc
        return self.get_by_id(cursor.lastrowid)  # type: ignore[return-value]

    @log_timing("DB_OP")
    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored password hash; return True if a row changed."""
        logger.info("Updating password hash for user id=%s", user_id)
        cursor = self._conn.execute(
            "UPDATE users SET hashed_password = ?, updated_at = ? WHERE id = ?",
            (hashed_password, datetime.now(tz=timezone.utc).isoformat(), user_id),
        )
        return cursor.rowcount > 0

    @log_timing("DB_OP")
    def update_role(self, user_id: int, role: UserRole) -> bool:
        logger.info("Updating role for user id=%s to %s", user_id, role.value)
        cursor = self._conn.execute(
            "UPDATE users SET role = ?, updated_at = ? WHERE id = ?",
            (role.value, datetime.now(tz=timezone.utc).isoformat(), user_id),
        )
        return cursor.rowcount > 0
