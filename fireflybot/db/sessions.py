"""
Session store backed by SQLite.

Each chat has at most one row. ``save`` is the single mutation point for a
conversation; a ``load`` after a ``save`` for the same chat sees the saved
value because both go through the same database file. There is no ordering
guarantee across chats.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from fireflybot.errors import SessionStoreFailure
from fireflybot.models import ConversationState, Session

from .base import BaseRepository

logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository):
    """Durable mapping from chat identity to conversation state."""

    def load(self, chat_id: str) -> Optional[Session]:
        """
        Load the session for a chat.

        Returns:
            The stored Session, or None if the chat has none

        Raises:
            SessionStoreFailure: If the store cannot be read or the row is corrupt
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT payload FROM sessions WHERE chat_id = ?",
                    (str(chat_id),),
                ).fetchone()
        except sqlite3.Error as e:
            raise SessionStoreFailure("load", str(chat_id), str(e)) from e

        if row is None:
            return None

        try:
            return Session.from_dict(json.loads(row["payload"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt session row for chat {chat_id}: {e}", exc_info=True)
            raise SessionStoreFailure("load", str(chat_id), f"corrupt row: {e}") from e

    def save(self, session: Session):
        """
        Insert or replace the session for its chat.

        Raises:
            SessionStoreFailure: If the write fails; nothing is stored then
        """
        payload = json.dumps(session.to_dict())
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO sessions (chat_id, state, payload, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(chat_id) DO UPDATE SET
                        state = excluded.state,
                        payload = excluded.payload,
                        updated_at = excluded.updated_at
                    """,
                    (
                        session.chat_id,
                        session.state.value,
                        payload,
                        self._utc(session.updated_at).isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise SessionStoreFailure("save", session.chat_id, str(e)) from e

        logger.debug(f"Saved session for chat {session.chat_id} ({session.state.value})")

    def delete(self, chat_id: str) -> bool:
        """
        Delete the session for a chat.

        Returns:
            True if a session was deleted

        Raises:
            SessionStoreFailure: If the delete fails
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM sessions WHERE chat_id = ?", (str(chat_id),)
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise SessionStoreFailure("delete", str(chat_id), str(e)) from e

        if deleted:
            logger.debug(f"Deleted session for chat {chat_id}")
        return deleted

    def archive(
        self,
        chat_id: str,
        transaction_id: str,
        transaction_type: Optional[str] = None,
    ):
        """
        Record a committed conversation; only the ledger id and type are kept.

        Raises:
            SessionStoreFailure: If the write fails
        """
        if not transaction_id:
            raise ValueError("Only committed conversations can be archived")

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO committed_sessions
                    (chat_id, transaction_id, transaction_type, committed_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        str(chat_id),
                        transaction_id,
                        transaction_type,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise SessionStoreFailure("archive", str(chat_id), str(e)) from e

    def committed_ids(self, chat_id: str, limit: int = 10) -> list[str]:
        """Ledger ids of the most recent commits for a chat, newest first."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT transaction_id FROM committed_sessions
                    WHERE chat_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (str(chat_id), limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise SessionStoreFailure("committed_ids", str(chat_id), str(e)) from e
        return [row["transaction_id"] for row in rows]

    def purge_expired(self, cutoff: datetime) -> int:
        """
        Delete sessions whose last activity is older than ``cutoff``.

        Returns:
            Number of sessions removed
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM sessions WHERE updated_at < ?",
                    (self._utc(cutoff).isoformat(),),
                )
                removed = cursor.rowcount
        except sqlite3.Error as e:
            raise SessionStoreFailure("purge", None, str(e)) from e

        if removed:
            logger.info(f"Purged {removed} expired sessions")
        return removed

    def count(self, state: Optional[ConversationState] = None) -> int:
        """Number of stored sessions, optionally only those in ``state``."""
        query = "SELECT COUNT(*) FROM sessions"
        params: tuple = ()
        if state is not None:
            query += " WHERE state = ?"
            params = (state.value,)
        try:
            with self._get_connection() as conn:
                return conn.execute(query, params).fetchone()[0]
        except sqlite3.Error as e:
            raise SessionStoreFailure("count", None, str(e)) from e

    @staticmethod
    def _utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
