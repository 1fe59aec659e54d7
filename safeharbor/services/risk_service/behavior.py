"""Behavior store: recent mood check-ins and crisis-flag history."""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from psycopg2.extras import RealDictCursor

from safeharbor.shared.database import ConnectionManager, RepositoryError
from safeharbor.shared.models import BehaviorEntry, utcnow

logger = logging.getLogger(__name__)

CONVERSATION_WINDOW_DAYS = 7


class BehaviorStore(ABC):
    """Reads behavioral history used by the risk assessor."""

    @abstractmethod
    async def recent_entries(self, user_id: str, n: int) -> List[BehaviorEntry]:
        """Up to ``n`` most recent mood entries, newest first."""

    @abstractmethod
    async def recent_crisis_flags(self, user_id: str, days: int) -> int:
        """Number of crisis flags raised for the user in the last ``days``."""

    @abstractmethod
    async def recent_conversation_count(self, user_id: str, days: int) -> Optional[int]:
        """Conversations the user started in the last ``days``, or None if not tracked."""

    @abstractmethod
    async def record_crisis_flag(self, user_id: str, at: datetime) -> None:
        """Append a crisis flag (high or critical assessment)."""


class InMemoryBehaviorStore(BehaviorStore):
    """In-memory for dev and tests; PostgreSQL in prod."""

    def __init__(self):
        self._entries: Dict[str, List[BehaviorEntry]] = {}
        self._flags: Dict[str, List[datetime]] = {}
        self._conversations: Dict[str, List[datetime]] = {}

    def add_entry(self, user_id: str, entry: BehaviorEntry) -> None:
        self._entries.setdefault(user_id, []).append(entry)

    def record_conversation(self, user_id: str, at: datetime) -> None:
        self._conversations.setdefault(user_id, []).append(at)

    def track_conversations(self, user_id: str) -> None:
        """Start tracking a user with no conversations yet."""
        self._conversations.setdefault(user_id, [])

    async def recent_entries(self, user_id: str, n: int) -> List[BehaviorEntry]:
        entries = sorted(self._entries.get(user_id, []), key=lambda e: e.timestamp, reverse=True)
        return entries[:n]

    async def recent_crisis_flags(self, user_id: str, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        return sum(1 for at in self._flags.get(user_id, []) if at >= cutoff)

    async def recent_conversation_count(self, user_id: str, days: int) -> Optional[int]:
        if user_id not in self._conversations:
            return None
        cutoff = utcnow() - timedelta(days=days)
        return sum(1 for at in self._conversations[user_id] if at >= cutoff)

    async def record_crisis_flag(self, user_id: str, at: datetime) -> None:
        self._flags.setdefault(user_id, []).append(at)


class PostgresBehaviorStore(BehaviorStore):
    """Behavior store over the mood_entries, crisis_flags and conversation_sessions tables."""

    def __init__(self, connection_manager: ConnectionManager):
        self.connection_manager = connection_manager

    def _fetch(self, query: str, params: tuple) -> List[dict]:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, params)
                    return [dict(row) for row in cur.fetchall()]
        except Exception as e:
            logger.error("BEHAVIOR_QUERY_FAILED", extra={"error": str(e)})
            raise RepositoryError(str(e)) from e

    def _insert_flag(self, user_id: str, at: datetime) -> None:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "INSERT INTO crisis_flags (id, user_id, created_at) VALUES (%s, %s, %s)",
                        (f"flag_{uuid.uuid4().hex[:16]}", user_id, at),
                    )
                conn.commit()
        except Exception as e:
            logger.error("CRISIS_FLAG_INSERT_FAILED", extra={"error": str(e)})
            raise RepositoryError(str(e)) from e

    async def recent_entries(self, user_id: str, n: int) -> List[BehaviorEntry]:
        rows = await asyncio.to_thread(
            self._fetch,
            "SELECT mood_score, sleep_quality, recorded_at FROM mood_entries "
            "WHERE user_id = %s ORDER BY recorded_at DESC LIMIT %s",
            (user_id, n),
        )
        return [
            BehaviorEntry(
                score=float(row["mood_score"]),
                sleep_quality=float(row["sleep_quality"]) if row.get("sleep_quality") is not None else None,
                timestamp=row["recorded_at"],
            )
            for row in rows
        ]

    async def recent_crisis_flags(self, user_id: str, days: int) -> int:
        rows = await asyncio.to_thread(
            self._fetch,
            "SELECT COUNT(*) AS flag_count FROM crisis_flags "
            "WHERE user_id = %s AND created_at >= %s",
            (user_id, utcnow() - timedelta(days=days)),
        )
        return int(rows[0]["flag_count"]) if rows else 0

    async def record_crisis_flag(self, user_id: str, at: datetime) -> None:
        await asyncio.to_thread(self._insert_flag, user_id, at)

    async def recent_conversation_count(self, user_id: str, days: int) -> Optional[int]:
        rows = await asyncio.to_thread(
            self._fetch,
            "SELECT COUNT(*) AS conversation_count FROM conversation_sessions "
            "WHERE user_id = %s AND started_at >= %s",
            (user_id, utcnow() - timedelta(days=days)),
        )
        return int(rows[0]["conversation_count"]) if rows else 0
