import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv #for loading environment variables from a .env file

load_dotenv()

_DEFAULT_DATABASE_PATH = "chatbot.db"
_DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
_DEFAULT_DISCORD_API_BASE = "https://discord.com/api/v10"


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


@dataclass(frozen=True)
class Settings:
    database_path: str = _DEFAULT_DATABASE_PATH
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_timeout_seconds: int = 60
    embedding_model: str = _DEFAULT_EMBEDDING_MODEL
    chat_history_limit: int = 20
    rag_top_k: int = 5
    rag_chunk_size: int = 1000
    discord_bot_token: Optional[str] = None
    discord_api_base: str = _DEFAULT_DISCORD_API_BASE
    discord_timeout_seconds: int = 10
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read settings from the environment (and .env, loaded at import time)."""
    return Settings(
        database_path=os.getenv("DATABASE_PATH", _DEFAULT_DATABASE_PATH),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_timeout_seconds=_int_env("OPENAI_TIMEOUT_SECONDS", 60),
        embedding_model=os.getenv("EMBEDDING_MODEL", _DEFAULT_EMBEDDING_MODEL),
        chat_history_limit=_int_env("CHAT_HISTORY_LIMIT", 20),
        rag_top_k=_int_env("RAG_TOP_K", 5),
        rag_chunk_size=_int_env("RAG_CHUNK_SIZE", 1000, minimum=100),
        discord_bot_token=os.getenv("DISCORD_BOT_TOKEN") or None,
        discord_api_base=os.getenv("DISCORD_API_BASE", _DEFAULT_DISCORD_API_BASE).rstrip("/"),
        discord_timeout_seconds=_int_env("DISCORD_TIMEOUT_SECONDS", 10),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
