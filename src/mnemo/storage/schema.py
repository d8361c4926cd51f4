"""
Store schema helpers.

The engine does not own the relational store. It only ships the schema and a
helper to apply it to a SQLite connection.
"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

TABLES = ("users", "entries", "chunks", "vectors", "summaries", "audit")


def load_schema() -> str:
    """Return the schema DDL."""
    return SCHEMA_PATH.read_text(encoding="utf-8")


def initialize_schema(conn: sqlite3.Connection) -> None:
    """
    Create all tables and indexes. Safe to run on an initialized database.

    Args:
        conn: Open SQLite connection
    """
    conn.executescript(load_schema())
    conn.commit()
    logger.info("Store schema initialized")


def open_database(path: Union[str, Path]) -> sqlite3.Connection:
    """Open (creating if needed) a SQLite database and apply the schema."""
    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    logger.debug(f"Opened store database: {db_path}")
    return conn


def list_tables(conn: sqlite3.Connection) -> List[str]:
    """Names of user tables in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    ).fetchall()
    return [row[0] for row in rows]
