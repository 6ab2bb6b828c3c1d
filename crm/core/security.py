"""
Password hashing for the user directory.

Hashes are produced by a passlib ``CryptContext`` so stored hashes can be
upgraded transparently when the configured scheme or cost changes.
"""
from typing import Optional, Tuple
import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """Return the bcrypt hash of *plain_password*."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return True if *plain_password* matches *hashed_password*."""
    return pwd_context.verify(plain_password, hashed_password)


def verify_and_upgrade(
    plain_password: str, hashed_password: str
) -> Tuple[bool, Optional[str]]:
    """
    Verify a password and, when the stored hash is outdated, return a
    replacement hash alongside the result.
    """
    valid, new_hash = pwd_context.verify_and_update(plain_password, hashed_password)
    if valid and new_hash:
        logger.info("Stored password hash uses a deprecated scheme, upgrading")
    return valid, new_hash
