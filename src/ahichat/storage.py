"""SQLite-backed conversation history with today/yesterday/earlier bucketing."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from pydantic import ValidationError

from .config import CONVERSATIONS_KEY, SESSION_KEY
from .models import Conversation, HistoryBuckets, Session

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class ConversationStore:
    """Persists the conversation list as one JSON document under a fixed key.

    Every write is a whole-list read-modify-write inside a single
    ``BEGIN IMMEDIATE`` transaction, so two saves for the same id cannot
    interleave their read and write halves.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path), isolation_level=None)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    def _get_raw(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set_raw(self, key: str, value: str):
        self.conn.execute(
            """INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )

    def _read_document(self) -> list[Any]:
        """Raw stored items. Raises ValueError when the document cannot be read."""
        raw = self._get_raw(CONVERSATIONS_KEY)
        if not raw:
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("stored history is not a list")
        return data

    @staticmethod
    def _validate(items: list[Any]) -> tuple[list[Conversation], list[Any]]:
        """Split stored items into readable conversations and unreadable raw items."""
        conversations: list[Conversation] = []
        unreadable: list[Any] = []
        for item in items:
            try:
                conversations.append(Conversation.model_validate(item))
            except ValidationError:
                conv_id = item.get("id", "unknown") if isinstance(item, dict) else "unknown"
                logger.warning("Skipping unreadable conversation '%s'", conv_id, exc_info=True)
                unreadable.append(item)
        return conversations, unreadable

    def _read_for_update(self) -> tuple[list[Conversation], list[Any]]:
        """Strict read for a read-modify-write. Storage errors propagate.

        An unreadable document is copied to a side key before it is replaced.
        """
        try:
            items = self._read_document()
        except ValueError:
            backup_key = f"{CONVERSATIONS_KEY}.unreadable"
            self._set_raw(backup_key, self._get_raw(CONVERSATIONS_KEY))
            logger.warning("Stored history is unreadable, kept a copy under %s", backup_key)
            return [], []
        return self._validate(items)

    def _write_conversations(self, conversations: list[Conversation], unreadable: list[Any]):
        payload = [c.model_dump(mode="json", by_alias=True) for c in conversations]
        self._set_raw(CONVERSATIONS_KEY, json.dumps(payload + unreadable))

    def load(self) -> list[Conversation]:
        """All stored conversations, most recently saved first. Never raises on bad data."""
        try:
            items = self._read_document()
        except (sqlite3.Error, ValueError):
            logger.warning("Failed to load history", exc_info=True)
            return []
        return self._validate(items)[0]

    def get(self, conversation_id: str) -> Conversation | None:
        for conv in self.load():
            if conv.id == conversation_id:
                return conv
        return None

    def save(self, conversation: Conversation):
        """Insert or fully replace the conversation with the same id, placing it first."""
        with self._transaction():
            existing, unreadable = self._read_for_update()
            remaining = [c for c in existing if c.id != conversation.id]
            unreadable = [
                item
                for item in unreadable
                if not (isinstance(item, dict) and item.get("id") == conversation.id)
            ]
            self._write_conversations([conversation, *remaining], unreadable)

        logger.debug(
            "Saved conversation %s (%d messages)", conversation.id, len(conversation.messages)
        )

    def delete_by_predicate(self, predicate: Callable[[Conversation], bool]) -> int:
        """Remove every conversation matching `predicate`. Returns how many were removed."""
        with self._transaction():
            existing, unreadable = self._read_for_update()
            remaining = [c for c in existing if not predicate(c)]
            removed = len(existing) - len(remaining)
            if removed:
                self._write_conversations(remaining, unreadable)
        return removed

    def delete_by_id(self, conversation_id: str) -> int:
        return self.delete_by_predicate(lambda c: c.id == conversation_id)

    def delete_many(self, conversations: Iterable[Conversation]) -> int:
        ids = {c.id for c in conversations}
        return self.delete_by_predicate(lambda c: c.id in ids)

    def clear(self):
        self.conn.execute(
            "DELETE FROM kv WHERE key IN (?, ?)",
            (CONVERSATIONS_KEY, f"{CONVERSATIONS_KEY}.unreadable"),
        )

    def export_json(self) -> str:
        return json.dumps(
            [c.model_dump(mode="json", by_alias=True) for c in self.load()], indent=2
        )

    def load_session(self) -> Session | None:
        try:
            raw = self._get_raw(SESSION_KEY)
            return Session.model_validate_json(raw) if raw else None
        except (sqlite3.Error, ValidationError):
            logger.warning("Failed to load stored session", exc_info=True)
            return None

    def save_session(self, session: Session):
        self._set_raw(SESSION_KEY, session.model_dump_json(by_alias=True))

    def close(self):
        self.conn.close()


def start_of_today(now: int) -> int:
    """Local midnight of the day containing `now`, in epoch-ms."""
    local = datetime.fromtimestamp(now / 1000)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def _bounds(now: int) -> tuple[int, int]:
    today_start = start_of_today(now)
    return today_start, today_start - DAY_MS


def today_conversations(conversations: Iterable[Conversation], now: int) -> list[Conversation]:
    today_start, _ = _bounds(now)
    return [c for c in conversations if c.last_updated_at >= today_start]


def yesterday_conversations(
    conversations: Iterable[Conversation], now: int
) -> list[Conversation]:
    today_start, yesterday_start = _bounds(now)
    return [c for c in conversations if yesterday_start <= c.last_updated_at < today_start]


def earlier_conversations(conversations: Iterable[Conversation], now: int) -> list[Conversation]:
    _, yesterday_start = _bounds(now)
    return [c for c in conversations if c.last_updated_at < yesterday_start]


def bucket_conversations(conversations: Iterable[Conversation], now: int) -> HistoryBuckets:
    """Partition conversations by last update into today, yesterday and earlier."""
    conversations = list(conversations)
    return HistoryBuckets(
        today=today_conversations(conversations, now),
        yesterday=yesterday_conversations(conversations, now),
        earlier=earlier_conversations(conversations, now),
    )


def merge_for_view(
    conversations: Iterable[Conversation], synthetic_id: str
) -> Conversation | None:
    """Combine several conversations into one read-only thread sorted by timestamp."""
    conversations = list(conversations)
    if not conversations:
        return None

    messages = sorted(
        (m for c in conversations for m in c.messages), key=lambda m: m.timestamp
    )
    return Conversation(
        id=synthetic_id,
        messages=messages,
        started_at=min(c.started_at for c in conversations),
        last_updated_at=max(c.last_updated_at for c in conversations),
    )
