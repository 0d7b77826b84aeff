"""Integration tests for database operations."""

import asyncio

import pytest

from src.exceptions import DatabaseError


class TestDatabaseConnection:
    """Tests for Database class connection and schema."""

    @pytest.mark.asyncio
    async def test_connect_creates_tables(self, temp_db_path):
        """Test connect() creates schema tables."""
        from src.database.connection import Database

        db = Database(temp_db_path)
        await db.connect()

        rows = await db.execute_read("SELECT name FROM sqlite_master WHERE type='table'")
        table_names = {row[0] for row in rows}

        assert {
            "projects",
            "project_processes",
            "quantity_sheets",
            "transactions",
            "dispatches",
            "event_logs",
        } <= table_names

        await db.close()

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, temp_db_path):
        """Test connect() can be called multiple times."""
        from src.database.connection import Database

        db = Database(temp_db_path)
        await db.connect()
        await db.connect()

        rows = await db.execute_read("SELECT 1")
        assert rows[0][0] == 1

        await db.close()

    @pytest.mark.asyncio
    async def test_unconnected_database_raises(self, temp_db_path):
        from src.database.connection import Database

        db = Database(temp_db_path)

        with pytest.raises(DatabaseError, match="not connected"):
            await db.execute_read("SELECT 1")


class TestDatabaseTransaction:
    """Tests for the transaction() context manager."""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, test_database):
        async with test_database.transaction():
            row_id = await test_database.execute_insert_no_commit(
                "INSERT INTO machines (machine_name) VALUES (?)", ["Heidelberg 4"]
            )

        rows = await test_database.execute_read(
            "SELECT machine_name FROM machines WHERE machine_id = ?", [row_id]
        )
        assert rows == [("Heidelberg 4",)]

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, test_database):
        with pytest.raises(RuntimeError):
            async with test_database.transaction():
                await test_database.execute_write_no_commit(
                    "INSERT INTO machines (machine_name) VALUES (?)", ["Komori"]
                )
                raise RuntimeError("boom")

        rows = await test_database.execute_read("SELECT COUNT(*) FROM machines")
        assert rows[0][0] == 0

    @pytest.mark.asyncio
    async def test_executemany_no_commit(self, test_database):
        async with test_database.transaction():
            await test_database.executemany_no_commit(
                "INSERT INTO zones (zone_no) VALUES (?)", [("Z1",), ("Z2",)]
            )

        rows = await test_database.execute_read("SELECT zone_no FROM zones ORDER BY zone_no")
        assert [row[0] for row in rows] == ["Z1", "Z2"]

    @pytest.mark.asyncio
    async def test_rollback_leaves_concurrent_transaction_intact(self, test_database):
        async def slow_commit():
            async with test_database.transaction():
                await test_database.execute_write_no_commit(
                    "INSERT INTO machines (machine_name) VALUES (?)", ["Heidelberg 4"]
                )
                for _ in range(5):
                    await asyncio.sleep(0)

        async def failing():
            await asyncio.sleep(0)
            async with test_database.transaction():
                await test_database.execute_write_no_commit(
                    "INSERT INTO machines (machine_name) VALUES (?)", ["Komori"]
                )
                raise RuntimeError("boom")

        results = await asyncio.gather(slow_commit(), failing(), return_exceptions=True)

        assert results[0] is None
        assert isinstance(results[1], RuntimeError)
        rows = await test_database.execute_read("SELECT machine_name FROM machines")
        assert rows == [("Heidelberg 4",)]
