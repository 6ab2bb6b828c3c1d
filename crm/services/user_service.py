"""
User directory: credential checks, registration and role lookup.

The token subsystem only ever asks this service two questions: "who do these
credentials belong to?" and "what is this user's role right now?".
"""
import sqlite3
from typing import Optional
import logging

from crm.core.errors import ConflictError, InvalidCredentialsError, NotFoundError
from crm.core.security import hash_password, verify_and_upgrade, verify_password
from crm.models.user import User, UserRole
from crm.repositories.user_repository import UserRepository
from crm.schemas.user import UserCreate

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._repo = UserRepository(conn)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_credentials(self, identifier: str, password: str) -> Optional[User]:
        """
        Return the active user matching *identifier* (email or username) and
        *password*, or None. Outdated password hashes are upgraded in place.
        """
        user = self._repo.get_by_email(identifier) or self._repo.get_by_username(identifier)
        if user is None or not user.is_active:
            logger.warning("No active user for login identifier '%s'", identifier)
            return None

        valid, new_hash = verify_and_upgrade(password, user.hashed_password)
        if not valid:
            logger.warning("Password mismatch for user id=%s", user.id)
            return None
        if new_hash:
            self._repo.update_password(user.id, new_hash)
        return user

    def get_user(self, user_id: int) -> User:
        user = self._repo.get_by_id(user_id)
        if user is None:
            logger.warning("User id=%s not found", user_id)
            raise NotFoundError(f"User with id={user_id} not found")
        return user

    def resolve_role(self, user_id: int) -> Optional[str]:
        """Current role of an active user, or None if the account is gone."""
        user = self._repo.get_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user.role.value

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register_user(self, data: UserCreate) -> User:
        """Create a new account with the default ``user`` role."""
        logger.info("Registering user %s", data.username)
        if self._repo.get_by_email(data.email):
            logger.warning("Duplicate email registration attempt: %s", data.email)
            raise ConflictError("Email is already registered")
        if self._repo.get_by_username(data.username):
            logger.warning("Duplicate username registration attempt: %s", data.username)
            raise ConflictError("Username is already taken")

        user = self._repo.create(
            username=data.username,
            email=data.email,
            hashed_password=hash_password(data.password),
            role=UserRole.USER,
        )
        logger.info("User registered id=%s", user.id)
        return user

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self.get_user(user_id)
        if not verify_password(current_password, user.hashed_password):
            logger.warning("Password change rejected for user id=%s", user_id)
            raise InvalidCredentialsError("Current password is incorrect")
        self._repo.update_password(user_id, hash_password(new_password))
        logger.info("Password changed for user id=%s", user_id)

    def update_role(self, user_id: int, role: UserRole) -> User:
        self.get_user(user_id)
        self._repo.update_role(user_id, role)
        return self.get_user(user_id)
