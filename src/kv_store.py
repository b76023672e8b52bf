"""Key-value stores used to persist search history and saved searches."""
import asyncio
import sys
import aiosqlite
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Set


# Default database location
DEFAULT_DB_PATH = Path.home() / ".patient-search" / "store.db"


class KeyValueStore(Protocol):
    """Synchronous string key-value storage (localStorage-like)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """In-process key-value store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore:
    """SQLite-backed key-value store with write-behind persistence.

    Reads are served from an in-memory copy loaded by initialize(). Writes
    update that copy right away and are written to SQLite by background
    tasks; a failed write is logged and the in-memory value is kept.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.patient-search/store.db
        """
        self.db_path = db_path or DEFAULT_DB_PATH
        self._connection: Optional[aiosqlite.Connection] = None
        self._cache: Dict[str, str] = {}
        self._pending: Set[asyncio.Task] = set()

    async def initialize(self) -> None:
        """Open the database, create the table and load all rows."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()

        cursor = await self._connection.execute("SELECT key, value FROM kv_store")
        rows = await cursor.fetchall()
        self._cache = {row["key"]: row["value"] for row in rows}

    async def flush(self) -> None:
        """Wait for all scheduled writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Flush pending writes and close the database connection."""
        await self.flush()
        if self._connection:
            await self._connection.close()
            self._connection = None

    def get(self, key: str) -> Optional[str]:
        self._ensure_initialized()
        return self._cache.get(key)

    def set(self, key: str, value: str) -> None:
        """Store a value and schedule its write.

        Raises:
            RuntimeError: If the store isn't initialized or no event loop is running
        """
        self._ensure_initialized()
        self._cache[key] = value
        self._schedule(self._write(key, value))

    def remove(self, key: str) -> None:
        self._ensure_initialized()
        self._cache.pop(key, None)
        self._schedule(self._delete(key))

    def _ensure_initialized(self) -> None:
        if not self._connection:
            raise RuntimeError("Store not initialized. Call initialize() first.")

    def _schedule(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            raise
        self._pending.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            print(f"[KeyValueStore] Write failed: {task.exception()}", file=sys.stderr)

    async def _write(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self._connection.execute("""
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, value, now))
        await self._connection.commit()

    async def _delete(self, key: str) -> None:
        await self._connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        await self._connection.commit()


# Global store instance
_kv_store: Optional[SqliteKeyValueStore] = None


async def get_kv_store(db_path: Optional[Path] = None) -> SqliteKeyValueStore:
    """Get or create the global key-value store instance.

    Args:
        db_path: Database path used when the store is first created

    Returns:
        Initialized SqliteKeyValueStore
    """
    global _kv_store

    if _kv_store is None:
        _kv_store = SqliteKeyValueStore(db_path)
        await _kv_store.initialize()

    return _kv_store
