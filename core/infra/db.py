"""
Database infrastructure with SQLite and async support.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import aiosqlite


logger = logging.getLogger(__name__)


def resolve_db_path(db_url: str) -> Path:
    """Accept plain paths as well as ``sqlite:///path`` / ``file:path`` URLs."""
    if db_url.startswith("sqlite"):
        # Handle sqlite+aiosqlite:///path format
        if "///" in db_url:
            return Path(db_url.split("///")[-1])
        return Path(db_url.split("//")[-1])
    if db_url.startswith("file:"):
        return Path(db_url[len("file:"):])
    return Path(db_url)


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: str = "scraper.db"):
        self.db_path = resolve_db_path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self, *, read_only: bool = False) -> None:
        """Open the connection (idempotent).

        With *read_only* the file must already exist; it is opened without
        changing its journal mode and every write is refused.
        """
        if self._connection:
            return

        if read_only:
            if not self.db_path.is_file():
                raise FileNotFoundError(f"Database not found: {self.db_path}")
        elif self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Open connection with a longer busy timeout
        self._connection = await aiosqlite.connect(self.db_path, timeout=30)
        self._connection.row_factory = aiosqlite.Row
        if read_only:
            await self._connection.execute("PRAGMA query_only=ON;")
        else:
            await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        logger.debug("Connected to %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def transaction(self):
        """Context manager for database transactions."""
        if not self._connection:
            await self.connect()

        try:
            await self._connection.execute("BEGIN")
            yield self._connection
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        if not self._connection:
            await self.connect()
        return await self._connection.execute(sql, tuple(params))

    async def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT, commit, and return the new row id."""
        cursor = await self.execute(sql, params)
        await self._connection.commit()
        return cursor.lastrowid

    async def insert_many(self, sql: str, rows: Iterable[Tuple[Any, ...]]) -> int:
        """Insert many rows inside one transaction; returns the row count."""
        rows = list(rows)
        if not rows:
            return 0
        async with self.transaction() as conn:
            await conn.executemany(sql, rows)
        return len(rows)

    async def commit(self) -> None:
        if self._connection:
            await self._connection.commit()

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        """Fetch one row."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        cursor = await self.execute(sql, params)
        return await cursor.fetchall()
