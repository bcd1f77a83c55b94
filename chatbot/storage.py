"""
SQLite persistence for the chatbot.

This module owns the database schema and provides repositories for:
1. ChatbotConfigRepository: per-channel chatbot configuration
2. TicketRepository: ticket categories and tickets with per-guild numbering

Chat history (history.py) and RAG chunks (rag.py) live in the same database.
init_db() creates every table and is called once at startup; repositories
assume the schema exists.

The database path comes from the DATABASE_PATH environment variable
(default: chatbot.db). Every operation opens a short-lived connection, so
repositories are safe to share between request threads.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from chatbot.models import ChatbotConfig, Ticket, TicketCategory


@contextmanager
def _get_db_connection(db_path: str):
    """
    Context manager for SQLite database connections.

    Provides safe database connection handling with automatic commit/rollback.
    Sets row_factory to sqlite3.Row for dict-like access to query results.

    Usage:
        with _get_db_connection(db_path) as conn:
            rows = conn.execute("SELECT * FROM tickets").fetchall()
            for row in rows:
                print(row["ticket_number"])

    Raises:
        sqlite3.Error: If database operations fail (automatically rolled back)
    """
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row  # Enable dict-like access: row["column_name"]
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str):
    """
    Initialize the SQLite schema.

    Creates all necessary tables if they don't exist:
    - chatbot_configs: One chatbot per channel
    - ticket_categories: Ticket categories per guild
    - tickets: Created tickets
    - ticket_counters: Last ticket number per guild
    - chat_messages: Conversation turns per (user, guild)
    - rag_chunks: Knowledge chunks with their embeddings per guild

    This function is idempotent - safe to call multiple times.
    """
    with _get_db_connection(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chatbot_configs (
                channel_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                chatbot_name TEXT NOT NULL,
                response_type TEXT,
                model_name TEXT NOT NULL,
                api_key TEXT NOT NULL,
                base_url TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ticket_categories (
                id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                name TEXT NOT NULL,
                is_enabled INTEGER NOT NULL DEFAULT 1,
                support_role_id TEXT,
                emoji TEXT,
                category_id TEXT NOT NULL,
                welcome_message TEXT,
                include_support_team INTEGER NOT NULL DEFAULT 0,
                position INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tickets (
                id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                creator_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                category_id TEXT NOT NULL,
                ticket_number INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'open',
                created_at TEXT NOT NULL,
                UNIQUE (guild_id, ticket_number)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ticket_counters (
                guild_id TEXT PRIMARY KEY,
                counter_value INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                guild_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('system', 'user', 'assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_chat_messages_scope
            ON chat_messages (user_id, guild_id, id)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS rag_chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                content TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimensions INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_category(row: sqlite3.Row) -> TicketCategory:
    return TicketCategory(
        id=row["id"],
        guild_id=row["guild_id"],
        name=row["name"],
        is_enabled=bool(row["is_enabled"]),
        support_role_id=row["support_role_id"],
        emoji=row["emoji"],
        category_id=row["category_id"],
        welcome_message=row["welcome_message"],
        include_support_team=bool(row["include_support_team"])
    )


class ChatbotConfigRepository:
    """Per-channel chatbot configuration."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert_config(self, config: ChatbotConfig) -> ChatbotConfig:
        with _get_db_connection(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO chatbot_configs
                (channel_id, guild_id, chatbot_name, response_type, model_name, api_key, base_url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                config.channel_id,
                config.guild_id,
                config.chatbot_name,
                config.response_type,
                config.model_name,
                config.api_key,
                config.base_url
            ))
        return config

    def get_config_by_channel_id(self, channel_id: str) -> Optional[ChatbotConfig]:
        with _get_db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM chatbot_configs WHERE channel_id = ?", (channel_id,)
            ).fetchone()
        if row is None:
            return None
        return ChatbotConfig(
            guild_id=row["guild_id"],
            channel_id=row["channel_id"],
            chatbot_name=row["chatbot_name"],
            response_type=row["response_type"],
            model_name=row["model_name"],
            api_key=row["api_key"],
            base_url=row["base_url"]
        )


class TicketRepository:
    """
    Ticket categories and tickets.

    Ticket numbers are sequential per guild (1, 2, 3, ...). The counter is
    incremented inside the same transaction that inserts the ticket, so two
    concurrent creations never share a number.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert_ticket_category(self, category: TicketCategory) -> TicketCategory:
        """
        Create or update a ticket category.

        New categories are appended after the guild's existing ones; updates
        keep their position, so the order seen by the model stays stable.
        """
        with _get_db_connection(self.db_path) as conn:
            existing = conn.execute(
                "SELECT position FROM ticket_categories WHERE id = ?", (category.id,)
            ).fetchone()
            if existing is not None:
                position = existing["position"]
            else:
                row = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 AS next_position FROM ticket_categories WHERE guild_id = ?",
                    (category.guild_id,)
                ).fetchone()
                position = row["next_position"]

            conn.execute("""
                INSERT OR REPLACE INTO ticket_categories
                (id, guild_id, name, is_enabled, support_role_id, emoji, category_id,
                 welcome_message, include_support_team, position)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                category.id,
                category.guild_id,
                category.name,
                1 if category.is_enabled else 0,
                category.support_role_id,
                category.emoji,
                category.category_id,
                category.welcome_message,
                1 if category.include_support_team else 0,
                position
            ))
        return category

    def get_ticket_categories(self, guild_id: str) -> List[TicketCategory]:
        with _get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM ticket_categories WHERE guild_id = ? ORDER BY position, id",
                (guild_id,)
            ).fetchall()
        return [_row_to_category(row) for row in rows]

    def get_ticket_category(self, category_id: str) -> Optional[TicketCategory]:
        with _get_db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM ticket_categories WHERE id = ?", (category_id,)
            ).fetchone()
        return _row_to_category(row) if row is not None else None

    def create_ticket(self, guild_id: str, user_id: str, channel_id: str, category_id: str) -> Ticket:
        """
        Create a ticket with the next ticket number of the guild.

        Args:
            guild_id: Guild the ticket belongs to
            user_id: Creator of the ticket
            channel_id: Private support channel of the ticket
            category_id: Ticket category id

        Returns:
            The persisted Ticket (status "open")
        """
        ticket_id = str(uuid.uuid4())
        created_at = _now_iso()

        with _get_db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO ticket_counters (guild_id, counter_value) VALUES (?, 0)",
                (guild_id,)
            )
            conn.execute(
                "UPDATE ticket_counters SET counter_value = counter_value + 1 WHERE guild_id = ?",
                (guild_id,)
            )
            ticket_number = conn.execute(
                "SELECT counter_value FROM ticket_counters WHERE guild_id = ?", (guild_id,)
            ).fetchone()["counter_value"]

            conn.execute("""
                INSERT INTO tickets
                (id, guild_id, creator_id, channel_id, category_id, ticket_number, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'open', ?)
            """, (ticket_id, guild_id, user_id, channel_id, category_id, ticket_number, created_at))

        return Ticket(
            id=ticket_id,
            guild_id=guild_id,
            creator_id=user_id,
            channel_id=channel_id,
            category_id=category_id,
            ticket_number=ticket_number,
            status="open",
            created_at=datetime.fromisoformat(created_at)
        )

    def get_tickets(self, guild_id: str) -> List[Ticket]:
        with _get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM tickets WHERE guild_id = ? ORDER BY ticket_number", (guild_id,)
            ).fetchall()
        return [
            Ticket(
                id=row["id"],
                guild_id=row["guild_id"],
                creator_id=row["creator_id"],
                channel_id=row["channel_id"],
                category_id=row["category_id"],
                ticket_number=row["ticket_number"],
                status=row["status"],
                created_at=datetime.fromisoformat(row["created_at"])
            )
            for row in rows
        ]
