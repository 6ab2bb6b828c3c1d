"""
Value objects shared by the token codec, the refresh token store and the
session services.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """The authenticated subject carried by an access token."""

    owner_id: int
    role: str


@dataclass(frozen=True)
class RefreshTokenRecord:
    """Server-side record kept for every unconsumed refresh token."""

    owner_id: int
    family_id: str

    @classmethod
    def from_row(cls, row) -> "RefreshTokenRecord":
        """Build a record from a sqlite3.Row of the refresh_tokens table."""
        return cls(owner_id=row["user_id"], family_id=row["family_id"])


@dataclass(frozen=True)
class IssuedRefreshToken:
    token: str
    family_id: str


@dataclass(frozen=True)
class SessionTokens:
    """An access/refresh pair handed to a client at login or rotation."""

    access_token: str
    refresh_token: str
    family_id: str
