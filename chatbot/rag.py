"""
Retrieval-augmented context for the chatbot.

Knowledge chunks are stored per guild together with their embedding vectors
(float32 BLOBs in SQLite). A query is embedded with the same model and scored
against every chunk of the guild in one matrix product over normalized
vectors; the best matches are formatted into a numbered context block for the
system prompt.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

import numpy as np #for vector storage and cosine scoring

from chatbot.chunking import split_response
from chatbot.models import ContextChunk
from chatbot.storage import _get_db_connection

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that can turn text into an embedding vector."""

    def embed(self, text: str) -> List[float]: ...


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    return np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    vector_a = np.asarray(a, dtype=np.float32)
    vector_b = np.asarray(b, dtype=np.float32)
    if vector_a.shape != vector_b.shape:
        raise ValueError(f"Embedding dimensions differ: {vector_a.shape[0]} != {vector_b.shape[0]}")
    return float(_normalize(vector_a) @ _normalize(vector_b))


class RagRepository:
    """Guild-scoped storage and similarity search of knowledge chunks."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def has_rag_data(self, guild_id: str) -> bool:
        with _get_db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM rag_chunks WHERE guild_id = ? LIMIT 1", (guild_id,)
            ).fetchone()
        return row is not None

    def add_chunks(self, guild_id: str, chunks: List[str], embeddings: List[List[float]]) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError("Every chunk needs exactly one embedding")

        now = datetime.now(timezone.utc).isoformat()
        rows = []
        for chunk, vector in zip(chunks, embeddings):
            array = np.asarray(vector, dtype=np.float32)
            rows.append((guild_id, chunk, array.tobytes(), int(array.shape[0]), now))

        with _get_db_connection(self.db_path) as conn:
            conn.executemany(
                "INSERT INTO rag_chunks (guild_id, content, embedding, dimensions, created_at) VALUES (?, ?, ?, ?, ?)",
                rows
            )
        return len(chunks)

    def delete_guild_data(self, guild_id: str) -> int:
        with _get_db_connection(self.db_path) as conn:
            return conn.execute("DELETE FROM rag_chunks WHERE guild_id = ?", (guild_id,)).rowcount

    def search_similar_chunks(self, guild_id: str, query_embedding: List[float], limit: int = 5) -> List[ContextChunk]:
        """Return the `limit` chunks most similar to the query, best match first."""
        query = np.asarray(query_embedding, dtype=np.float32)
        with _get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT content, embedding FROM rag_chunks WHERE guild_id = ? AND dimensions = ?",
                (guild_id, int(query.shape[0]))
            ).fetchall()

        if not rows:
            return []

        matrix = np.stack([np.frombuffer(row["embedding"], dtype=np.float32) for row in rows])
        scores = _normalize(matrix) @ _normalize(query)
        best = np.argsort(-scores, kind="stable")[:limit]
        return [ContextChunk(content=rows[i]["content"], similarity=float(scores[i])) for i in best]


class ContextRetriever:
    """Embeds user queries and turns the closest knowledge chunks into prompt context."""

    def __init__(self, repository: RagRepository, embedder: Optional[Embedder], top_k: int = 5):
        self.repository = repository
        self.embedder = embedder
        self.top_k = top_k

    def search_context(self, query: str, guild_id: str) -> Optional[str]:
        """
        Find relevant context for a query.

        Returns:
            A block of "[Context n]" sections, or None when the guild has no
            knowledge data or nothing was found.
        """
        if not self.repository.has_rag_data(guild_id):
            return None

        if self.embedder is None:
            logger.warning(f"[RAG] Guild {guild_id} has knowledge data but no embedder is configured")
            return None

        query_embedding = self.embedder.embed(query)
        similar_chunks = self.repository.search_similar_chunks(guild_id, query_embedding, self.top_k)

        if not similar_chunks:
            return None

        logger.debug(f"[RAG] {len(similar_chunks)} chunk(s) found for guild {guild_id}")
        return "\n\n".join(
            f"[Context {index}]\n{chunk.content}" for index, chunk in enumerate(similar_chunks, 1)
        )

    def ingest_document(self, guild_id: str, text: str, chunk_size: int = 1000) -> int:
        """Split a document on paragraph/sentence boundaries, embed each piece and store it."""
        if self.embedder is None:
            raise ValueError("An embedder is required to ingest documents")

        chunks = [chunk for chunk in split_response(text, max_length=chunk_size) if chunk]
        if not chunks:
            return 0

        embeddings = [self.embedder.embed(chunk) for chunk in chunks]
        stored = self.repository.add_chunks(guild_id, chunks, embeddings)
        logger.info(f"[RAG] Stored {stored} chunk(s) for guild {guild_id}")
        return stored
