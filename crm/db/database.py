"""Database connection helpers and initialization."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from crm.core.config import settings

logger = logging.getLogger(__name__)


def database_path(database_url: Optional[str] = None) -> str:
    """
    Return the SQLite file path for *database_url* (strips ``sqlite:///``).

    Falls back to the global ``DATABASE_URL`` when no URL is given.
    """
    return (database_url or settings.DATABASE_URL).replace("sqlite:///", "")


def get_connection(database_url: Optional[str] = None) -> sqlite3.Connection:
    """Create and return a new SQLite connection with row factory."""
    path = database_path(database_url)
    db_dir = os.path.dirname(path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_db(database_url: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Context manager that yields a database connection and auto-commits/rolls back."""
    conn = get_connection(database_url)
    try:
        yield conn
        conn.commit()
    except Exception:
        logger.error("Database transaction rolled back", exc_info=True)
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(database_url: Optional[str] = None) -> None:
    """Initialize the database by creating all tables."""
    logger.info("Initializing database schema at %s", database_path(database_url))
    from crm.db import schema

    schema.create_tables(database_url)
