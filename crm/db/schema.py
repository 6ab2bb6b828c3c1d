"""
SQL DDL statements for the tables owned by the auth subsystem.
Statements use IF NOT EXISTS so they are safe to run on every startup.
"""
from typing import Optional

from crm.db.database import get_connection

CREATE_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    username          TEXT    NOT NULL UNIQUE,
    email             TEXT    NOT NULL UNIQUE,
    hashed_password   TEXT    NOT NULL,
    role              TEXT    NOT NULL DEFAULT 'user'
                              CHECK(role IN ('admin', 'manager', 'user')),
    is_active         INTEGER NOT NULL DEFAULT 1,
    created_at        TEXT    NOT NULL DEFAULT (datetime('now')),
    updated_at        TEXT    NOT NULL DEFAULT (datetime('now'))
);
"""

# Backing table for SqliteRefreshTokenStore. Rows are deleted on
# consumption, so every row is an active refresh token.
CREATE_REFRESH_TOKENS_TABLE = """
CREATE TABLE IF NOT EXISTS refresh_tokens (
    token       TEXT    PRIMARY KEY,
    user_id     INTEGER NOT NULL,
    family_id   TEXT    NOT NULL,
    created_at  TEXT    NOT NULL DEFAULT (datetime('now'))
);
"""

# One row per owner whose refresh tokens were revoked wholesale. A rotation
# only records its successor if the owner's epoch is unchanged since the
# presented token was looked up.
CREATE_REFRESH_TOKEN_EPOCHS_TABLE = """
CREATE TABLE IF NOT EXISTS refresh_token_epochs (
    user_id     INTEGER PRIMARY KEY,
    epoch       INTEGER NOT NULL DEFAULT 0
);
"""

CREATE_REFRESH_TOKENS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS ix_refresh_tokens_user_id ON refresh_tokens (user_id)",
    "CREATE INDEX IF NOT EXISTS ix_refresh_tokens_family_id ON refresh_tokens (family_id)",
]

ALL_STATEMENTS = [
    CREATE_USERS_TABLE,
    CREATE_REFRESH_TOKENS_TABLE,
    CREATE_REFRESH_TOKEN_EPOCHS_TABLE,
    *CREATE_REFRESH_TOKENS_INDEXES,
]


def create_tables(database_url: Optional[str] = None) -> None:
    """Create all tables and indexes."""
    conn = get_connection(database_url)
    try:
        cursor = conn.cursor()
        for ddl in ALL_STATEMENTS:
            cursor.execute(ddl)
        conn.commit()
    finally:
        conn.close()
