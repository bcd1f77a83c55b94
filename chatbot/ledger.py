import logging
import time
from threading import Lock
from typing import Dict, Optional

from chatbot.models import PendingTicketCreation

logger = logging.getLogger(__name__)

CONFIRMATION_PREFIX = "ticket_confirm_"
PENDING_CONFIRMATION_TTL_SECONDS = 5 * 60


def _now_ms() -> int:
    return int(time.time() * 1000)


def confirmation_timestamp(confirmation_id: str) -> int:
    """Creation time (ms since epoch) embedded at the end of a confirmation id, 0 if unreadable."""
    try:
        return int(confirmation_id.rsplit("_", 1)[-1])
    except ValueError:
        return 0


class PendingActionLedger:
    """
    In-memory map of ticket creations waiting for the user's confirmation.

    Entries are never persisted: a restart simply makes outstanding
    confirmations report "expired". Expired entries are swept whenever a new
    confirmation is recorded, so staleness is bounded at write time only.
    Every operation holds the lock, which keeps a confirmation from racing a
    sweep when turns run on several threads.
    """

    def __init__(self, ttl_seconds: int = PENDING_CONFIRMATION_TTL_SECONDS):
        self.ttl_ms = ttl_seconds * 1000
        self._entries: Dict[str, PendingTicketCreation] = {}
        self._last_timestamp = 0
        self._lock = Lock()

    def new_confirmation_id(self, user_id: str) -> str:
        # timestamps are strictly increasing, so an id is never handed out twice
        with self._lock:
            timestamp = max(_now_ms(), self._last_timestamp + 1)
            self._last_timestamp = timestamp
        return f"{CONFIRMATION_PREFIX}{user_id}_{timestamp}"

    def put(self, confirmation_id: str, record: PendingTicketCreation) -> bool:
        """Store a pending creation; returns False if the id is already taken."""
        with self._lock:
            if confirmation_id in self._entries:
                return False
            self._entries[confirmation_id] = record
            return True

    def get(self, confirmation_id: str) -> Optional[PendingTicketCreation]:
        with self._lock:
            return self._entries.get(confirmation_id)

    def delete(self, confirmation_id: str) -> Optional[PendingTicketCreation]:
        """Remove and return an entry. Only one caller can ever receive a given entry."""
        with self._lock:
            return self._entries.pop(confirmation_id, None)

    def sweep_expired(self, now_ms: Optional[int] = None) -> int:
        """Drop entries older than the TTL; returns how many were removed."""
        cutoff = (now_ms if now_ms is not None else _now_ms()) - self.ttl_ms
        with self._lock:
            expired = [key for key in self._entries if confirmation_timestamp(key) < cutoff]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"[LEDGER] Swept {len(expired)} expired confirmation(s)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, confirmation_id: object) -> bool:
        with self._lock:
            return confirmation_id in self._entries
