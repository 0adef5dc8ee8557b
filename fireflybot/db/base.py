"""
Base repository module with connection management and schema initialization.

Provides the foundation for the session store of the Firefly bot.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from fireflybot.config import DB_TIMEOUT, DEFAULT_DB_PATH

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Base repository class with SQLite connection management.

    Opens a short-lived connection per operation so that repositories can be
    shared between concurrent conversations.
    """

    def __init__(self, db_path: Optional[Path] = None, init_schema: bool = True):
        """
        Initialize the base repository.

        Args:
            db_path: Path to the SQLite database file. Defaults to data/fireflybot.db
            init_schema: Whether to initialize the schema on startup
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._ensure_db_directory()
        if init_schema:
            self._init_schema()

    def _ensure_db_directory(self):
        """Ensure the database directory exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Database directory ensured: {self.db_path.parent}")
        except Exception as e:
            logger.error(f"Failed to create database directory: {e}", exc_info=True)
            raise

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=DB_TIMEOUT)
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            logger.error(f"Database locked or operational error: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise
        except Exception as e:
            logger.error(f"Database error: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def _init_schema(self):
        """Initialize the database schema."""
        with self._get_connection() as conn:
            # WAL keeps readers from blocking the writer of another chat
            conn.execute("PRAGMA journal_mode = WAL")

            # In-progress conversations, one row per chat
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    chat_id TEXT PRIMARY KEY CHECK(length(chat_id) > 0),
                    state TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # Committed conversations; only the ledger id is kept
            conn.execute("""
                CREATE TABLE IF NOT EXISTS committed_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id TEXT NOT NULL CHECK(length(chat_id) > 0),
                    transaction_id TEXT NOT NULL,
                    transaction_type TEXT,
                    committed_at TEXT NOT NULL
                )
            """)

            self._create_indexes(conn)

            logger.debug("Session schema initialized successfully")

    def _create_indexes(self, conn):
        """Create database indexes for query performance."""
        indexes = [
            ("idx_sessions_updated_at", "sessions", "updated_at"),
            ("idx_committed_chat_id", "committed_sessions", "chat_id"),
        ]

        for index_name, table, columns in indexes:
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS {index_name}
                ON {table}({columns})
            """)
