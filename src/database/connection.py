"""Database connection utilities."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from src.exceptions import DatabaseError


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        # Serializes writers on the shared connection
        self._write_lock = asyncio.Lock()

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise DatabaseError(f"Database {self.db_path} is not connected")
        return self._connection

    async def connect(self) -> None:
        self._connection = await aiosqlite.connect(self.db_path)
        await self._init_schema()

    async def _init_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        schema = schema_path.read_text(encoding="utf-8")
        await self._connection.executescript(schema)
        await self._connection.commit()

    async def execute_read(self, query: str, params=None):
        """Execute a read query and return all results."""
        async with self.connection.execute(query, params or []) as cursor:
            return await cursor.fetchall()

    async def execute_write(self, query: str, params=None) -> None:
        async with self._write_lock:
            await self.connection.execute(query, params or [])
            await self.connection.commit()

    async def executemany(self, query: str, params: Iterable[Sequence]) -> None:
        async with self._write_lock:
            await self.connection.executemany(query, params)
            await self.connection.commit()

    # =========================================================================
    # Transaction support for atomic batch operations
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transaction control.

        All writes succeed together or all roll back on error. One transaction
        is open at a time; others wait, so a rollback never touches another
        caller's writes. Not re-entrant.

        Usage:
            async with db.transaction():
                await db.execute_write_no_commit(...)
                row_id = await db.execute_insert_no_commit(...)
            # Commits on exit, rolls back on exception
        """
        async with self._write_lock:
            try:
                yield
                await self.connection.commit()
            except Exception:
                await self.connection.rollback()
                raise

    async def execute_write_no_commit(self, query: str, params=None) -> None:
        """Execute write without immediate commit (use within transaction)."""
        await self.connection.execute(query, params or [])

    async def execute_insert_no_commit(self, query: str, params=None) -> int:
        """Insert one row without committing and return its rowid."""
        async with self.connection.execute(query, params or []) as cursor:
            return cursor.lastrowid

    async def executemany_no_commit(self, query: str, params: Iterable[Sequence]) -> None:
        """Execute many without immediate commit (use within transaction)."""
        await self.connection.executemany(query, params)

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None
