from __future__ import annotations

from pathlib import Path

import pytest

from icp_screener.config import Config
from icp_screener.db.database import Database
from icp_screener.db.migrations import run_migrations
from icp_screener.db.repository import Store


@pytest.fixture
def db(tmp_path: Path):
    database = Database(str(tmp_path / "screener.db"))
    database.connect()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> Store:
    return Store(db)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        anthropic_api_key="test-anthropic",
        exa_api_key="test-exa",
        db_path=str(tmp_path / "screener.db"),
        concurrency=2,
    )
