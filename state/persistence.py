"""Thread history persistence with SQLite"""
import aiosqlite
from pathlib import Path
from typing import List, Optional, Sequence
import logging
from datetime import datetime

from state.history import ConversationMessage, apply_limit

logger = logging.getLogger(__name__)


class SqliteHistoryStore:
    """SQLite-backed history store, interchangeable with HistoryStore"""

    def __init__(self, db_path: Path, max_messages: Optional[int] = None):
        self.db_path = db_path
        self.max_messages = max_messages
        self.db: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Initialize database schema"""
        self.db = await aiosqlite.connect(self.db_path)

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS thread_messages (
                thread_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                role TEXT NOT NULL,
                text TEXT NOT NULL,
                PRIMARY KEY (thread_id, position)
            )
        """)
        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                thread_id TEXT PRIMARY KEY,
                updated_at REAL NOT NULL
            )
        """)
        await self.db.commit()
        logger.info(f"History database initialized: {self.db_path}")

    async def get(self, thread_id: str) -> List[ConversationMessage]:
        """Ordered messages for a thread, empty if unknown"""
        if not self.db:
            await self.initialize()

        cursor = await self.db.execute(
            """
            SELECT role, text
            FROM thread_messages
            WHERE thread_id = ?
            ORDER BY position
            """,
            (thread_id,)
        )
        rows = await cursor.fetchall()
        return [ConversationMessage(role=row[0], text=row[1]) for row in rows]

    async def commit(self, thread_id: str, messages: Sequence[ConversationMessage]) -> None:
        """Replace a thread's messages in one transaction"""
        if not self.db:
            await self.initialize()

        stored = apply_limit(messages, self.max_messages)
        try:
            await self.db.execute("DELETE FROM thread_messages WHERE thread_id = ?", (thread_id,))
            await self.db.executemany(
                """
                INSERT INTO thread_messages (thread_id, position, role, text)
                VALUES (?, ?, ?, ?)
                """,
                [(thread_id, i, m.role, m.text) for i, m in enumerate(stored)]
            )
            await self.db.execute(
                "INSERT OR REPLACE INTO threads (thread_id, updated_at) VALUES (?, ?)",
                (thread_id, datetime.now().timestamp())
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def cleanup_old_threads(self, max_age_hours: int = 24) -> int:
        """Remove threads not updated within ``max_age_hours``"""
        if not self.db:
            return 0

        cutoff = datetime.now().timestamp() - (max_age_hours * 3600)

        cursor = await self.db.execute(
            "SELECT thread_id FROM threads WHERE updated_at < ?",
            (cutoff,)
        )
        stale = [row[0] for row in await cursor.fetchall()]
        for thread_id in stale:
            await self.db.execute("DELETE FROM thread_messages WHERE thread_id = ?", (thread_id,))
            await self.db.execute("DELETE FROM threads WHERE thread_id = ?", (thread_id,))
        await self.db.commit()

        if stale:
            logger.info(f"Cleaned up {len(stale)} old threads")
        return len(stale)

    async def close(self):
        """Close database connection"""
        if self.db:
            await self.db.close()
            self.db = None
