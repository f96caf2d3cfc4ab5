"""
SQLite Cache Backend

Persistent TTL store for JSON-serializable values. Survives process restarts,
so a warm cache is reused after a redeploy.
"""

import asyncio
import json
import logging
import os
import sqlite3
from typing import Any, Optional

from .base import CacheBackend

logger = logging.getLogger(__name__)


class SQLiteCacheBackend(CacheBackend):
    """
    SQLite-based cache store. Values are stored as JSON text.
    """

    def __init__(self, db_path: str = "data/cache.db"):
        self.db_path = db_path
        self.db_write_lock = asyncio.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            directory = os.path.dirname(self.db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()

            # SQLite PRAGMAs für bessere Concurrency und Performance
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA busy_timeout=5000;")

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL NOT NULL
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_cache_entries_expires_at
                ON cache_entries (expires_at)
            ''')
            conn.commit()

            logger.info(f"SQLite cache initialized at {self.db_path}")
            self._conn = conn
        return self._conn

    async def get(self, key: str, now: float) -> Optional[Any]:
        conn = self._connection()
        row = conn.execute(
            "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None

        value, expires_at = row
        if now >= expires_at:
            await self.delete(key)
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt cache entry for {key}, dropping: {e}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, expires_at: float) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        async with self.db_write_lock:
            conn = self._connection()
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, payload, expires_at),
            )
            conn.commit()

    async def delete(self, key: str) -> None:
        async with self.db_write_lock:
            conn = self._connection()
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()

    async def sweep(self, now: float) -> int:
        async with self.db_write_lock:
            conn = self._connection()
            cursor = conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (now,))
            conn.commit()
            return cursor.rowcount

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
