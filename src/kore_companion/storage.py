"""SQLite storage. One file = one companion's long-term memory."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from kore_companion.errors import StorageError
from kore_companion.models import MemoryCategory, MemoryRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, content, category, embedding, importance, confidence, "
    "emotional_valence, emotion_tag, emotion_intensity, created_at, "
    "last_accessed, reinforcement_count, access_count, recall_difficulty, "
    "context_relevance, related_entities, related_characters, source, "
    "is_forgotten, forgotten_at"
)


class MemoryRepository(Protocol):
    """What MemoryStore needs from a persistence adapter."""

    def persist(self, record: MemoryRecord) -> None: ...

    def load(self, memory_id: str) -> MemoryRecord | None: ...

    def query_active(self) -> list[MemoryRecord]: ...

    def query_forgotten(self) -> list[MemoryRecord]: ...

    def delete(self, memory_id: str) -> bool: ...

    def count(self) -> int: ...

    def close(self) -> None: ...


class Storage:
    """SQLite backend. Zero config. Portable.

    Every sqlite3 failure surfaces as StorageError; nothing is retried here.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self.path}: {exc}") from exc

    def _init_schema(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'episodic',
                embedding BLOB,
                importance REAL NOT NULL DEFAULT 0.5,
                confidence REAL NOT NULL DEFAULT 1.0,
                emotional_valence REAL NOT NULL DEFAULT 0.0,
                emotion_tag TEXT,
                emotion_intensity REAL NOT NULL DEFAULT 0.0,
                created_at REAL NOT NULL,
                last_accessed REAL NOT NULL,
                reinforcement_count INTEGER NOT NULL DEFAULT 0,
                access_count INTEGER NOT NULL DEFAULT 0,
                recall_difficulty REAL NOT NULL DEFAULT 0.5,
                context_relevance REAL NOT NULL DEFAULT 0.5,
                related_entities TEXT NOT NULL DEFAULT '[]',
                related_characters TEXT NOT NULL DEFAULT '[]',
                source TEXT NOT NULL DEFAULT '',
                is_forgotten INTEGER NOT NULL DEFAULT 0,
                forgotten_at REAL
            );

            CREATE INDEX IF NOT EXISTS idx_memories_forgotten
                ON memories(is_forgotten);
            CREATE INDEX IF NOT EXISTS idx_memories_category
                ON memories(category);
            CREATE INDEX IF NOT EXISTS idx_memories_created
                ON memories(created_at DESC);
        """)
        self.conn.commit()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as exc:
                logger.error("storage %s failed: %s", operation, exc)
                raise StorageError(f"{operation} failed: {exc}") from exc

    # ── Memory CRUD ────────────────────────────────────────────────────

    def persist(self, record: MemoryRecord) -> None:
        with self._guard("persist") as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO memories ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id, record.content, record.category.value,
                    record.embedding, record.importance, record.confidence,
                    record.emotional_valence, record.emotion_tag,
                    record.emotion_intensity, record.created_at,
                    record.last_accessed, record.reinforcement_count,
                    record.access_count, record.recall_difficulty,
                    record.context_relevance,
                    json.dumps(sorted(record.related_entities)),
                    json.dumps(sorted(record.related_characters)),
                    record.source, int(record.is_forgotten), record.forgotten_at,
                ),
            )
            conn.commit()

    def load(self, memory_id: str) -> MemoryRecord | None:
        with self._guard("load") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def query_active(self) -> list[MemoryRecord]:
        with self._guard("query_active") as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE is_forgotten = 0 "
                "ORDER BY created_at"
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def query_forgotten(self) -> list[MemoryRecord]:
        with self._guard("query_forgotten") as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE is_forgotten = 1 "
                "ORDER BY forgotten_at"
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def delete(self, memory_id: str) -> bool:
        with self._guard("delete") as conn:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            conn.commit()
        return cursor.rowcount > 0

    def count(self) -> int:
        with self._guard("count") as conn:
            return conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]

    # ── Close ──────────────────────────────────────────────────────────

    def close(self) -> None:
        with self._guard("close") as conn:
            conn.close()

    # ── Row mappers ────────────────────────────────────────────────────

    @staticmethod
    def _row_to_record(row: tuple) -> MemoryRecord:
        return MemoryRecord(
            id=row[0],
            content=row[1],
            category=MemoryCategory(row[2]),
            embedding=row[3],
            importance=row[4],
            confidence=row[5],
            emotional_valence=row[6],
            emotion_tag=row[7],
            emotion_intensity=row[8],
            created_at=row[9],
            last_accessed=row[10],
            reinforcement_count=row[11],
            access_count=row[12],
            recall_difficulty=row[13],
            context_relevance=row[14],
            related_entities=set(json.loads(row[15])),
            related_characters=set(json.loads(row[16])),
            source=row[17],
            is_forgotten=bool(row[18]),
            forgotten_at=row[19],
        )
