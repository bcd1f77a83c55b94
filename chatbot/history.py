import logging
from datetime import datetime, timezone
from typing import List

from chatbot.models import HistoryTurn
from chatbot.storage import _get_db_connection

logger = logging.getLogger(__name__)


class ChatHistory:
    """
    Conversation history of one user inside one guild.

    get_history returns the last `limit` turns, oldest first. Turns are only
    ever appended; past entries are never rewritten.
    """

    def __init__(self, db_path: str, user_id: str, guild_id: str, limit: int = 20):
        self.db_path = db_path
        self.user_id = user_id
        self.guild_id = guild_id
        self.limit = limit

    def get_history(self) -> List[HistoryTurn]:
        with _get_db_connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT role, content FROM (
                    SELECT id, role, content FROM chat_messages
                    WHERE user_id = ? AND guild_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                ) ORDER BY id ASC
            """, (self.user_id, self.guild_id, self.limit)).fetchall()
        return [HistoryTurn(role=row["role"], content=row["content"]) for row in rows]

    def _add_message(self, role: str, content: str):
        with _get_db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT INTO chat_messages (user_id, guild_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (self.user_id, self.guild_id, role, content, datetime.now(timezone.utc).isoformat())
            )

    def add_system_message(self, content: str):
        self._add_message("system", content)

    def add_user_message(self, content: str):
        self._add_message("user", content)

    def add_assistant_message(self, content: str):
        self._add_message("assistant", content)

    def add_turn(self, user_content: str, assistant_content: str):
        """Persist a user message and its reply in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        with _get_db_connection(self.db_path) as conn:
            conn.executemany(
                "INSERT INTO chat_messages (user_id, guild_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
                [
                    (self.user_id, self.guild_id, "user", user_content, now),
                    (self.user_id, self.guild_id, "assistant", assistant_content, now)
                ]
            )

    def clear_history(self, keep_system_messages: bool = True) -> int:
        """Delete the stored turns; returns the number of removed messages."""
        query = "DELETE FROM chat_messages WHERE user_id = ? AND guild_id = ?"
        if keep_system_messages:
            query += " AND role != 'system'"
        with _get_db_connection(self.db_path) as conn:
            removed = conn.execute(query, (self.user_id, self.guild_id)).rowcount
        logger.info(f"[CHAT_HISTORY] Cleared {removed} message(s) for user {self.user_id} in guild {self.guild_id}")
        return removed
