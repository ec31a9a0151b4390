"""SQLite backed key-value store used by the retry queue."""

from __future__ import annotations

from typing import List, Optional, Protocol

import aiosqlite


class KeyValueStore(Protocol):
    """Store contract required by :class:`mail_relay.retry.RetryStore`."""

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def list_keys(self, prefix: str, limit: int) -> List[str]: ...

    async def count_keys(self, prefix: str) -> int: ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Persistence:
    """Helper class responsible for reading and writing relay state."""

    def __init__(self, db_path: str = "/data/mail_relay.db"):
        """Persist data to the given database path (``:memory:`` allowed)."""
        self.db_path = db_path or ":memory:"

    async def init_db(self) -> None:
        """Create the database schema."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await db.commit()

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or ``None``."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT value FROM kv WHERE key=?", (key,)) as cur:
                row = await cur.fetchone()
        return row[0] if row else None

    async def put(self, key: str, value: str) -> None:
        """Insert or overwrite ``key``."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            await db.commit()

    async def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it existed."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM kv WHERE key=?", (key,))
            await db.commit()
            return cursor.rowcount > 0

    async def list_keys(self, prefix: str, limit: int) -> List[str]:
        """Return up to ``limit`` keys starting with ``prefix`` in ascending order."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT key FROM kv
                WHERE key LIKE ? ESCAPE '\\'
                ORDER BY key ASC
                LIMIT ?
                """,
                (f"{_escape_like(prefix)}%", int(limit)),
            ) as cur:
                rows = await cur.fetchall()
        return [row[0] for row in rows]

    async def count_keys(self, prefix: str) -> int:
        """Return the number of keys starting with ``prefix``."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM kv WHERE key LIKE ? ESCAPE '\\'",
                (f"{_escape_like(prefix)}%",),
            ) as cur:
                row = await cur.fetchone()
        return int(row[0]) if row else 0
