"""Shared fixtures for CatchTrack tests."""

import tempfile
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from tests.fixtures.sample_data import SEED_SQL


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def temp_db_path() -> AsyncGenerator[Path, None]:
    """Create temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield db_path


@pytest_asyncio.fixture
async def test_database(temp_db_path: Path):
    """Initialized test database."""
    from src.database.connection import Database

    db = Database(temp_db_path)
    await db.connect()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def seeded_database(test_database):
    """Database holding the sample projects, catches and users."""
    for statement in SEED_SQL:
        await test_database.execute_write(statement)
    return test_database


@pytest.fixture
def store_reader(seeded_database):
    from src.store.reader import StoreReader

    return StoreReader(seeded_database)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def process_constants():
    """Default process ids (CTP 1, cutting 4, dispatch 14 ...)."""
    from src.process_config import ProcessConstants

    return ProcessConstants()


@pytest.fixture
def mock_reader():
    """StoreReader double whose reads all return empty results."""
    reader = AsyncMock()
    reader.get_projects.return_value = []
    reader.get_project.return_value = None
    reader.get_quantity_sheets.return_value = []
    reader.get_transactions.return_value = []
    reader.get_dispatches.return_value = []
    reader.get_event_logs.return_value = []
    reader.get_groups.return_value = []
    reader.get_processes.return_value = []
    reader.get_project_processes.return_value = []
    reader.get_zones.return_value = {}
    reader.get_machines.return_value = {}
    reader.get_teams.return_value = {}
    reader.get_users.return_value = {}
    return reader
