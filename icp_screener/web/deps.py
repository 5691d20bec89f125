"""Dependency injection for FastAPI: shared config, database, store."""

from __future__ import annotations

from functools import lru_cache

from icp_screener.config import Config, load_config
from icp_screener.db.database import Database
from icp_screener.db.migrations import run_migrations
from icp_screener.db.repository import Store


@lru_cache
def get_config() -> Config:
    return load_config()


_db_instance: Database | None = None


def get_db() -> Database:
    global _db_instance
    if _db_instance is None or not _db_instance.is_connected:
        _db_instance = Database(get_config().db_path)
        _db_instance.connect()
        run_migrations(_db_instance)
    return _db_instance


def get_store() -> Store:
    return Store(get_db())


def close_db() -> None:
    global _db_instance
    if _db_instance:
        _db_instance.close()
        _db_instance = None
