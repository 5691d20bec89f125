"""SQLite connection for the screener store (WAL mode, shared across tasks)."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".icp_screener.db"


class Database:
    """sqlite3 wrapper returning ``sqlite3.Row`` objects; each write commits."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self.conn is not None

    def connect(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        logger.debug("Connected to %s", self.db_path)

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def _require(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Database not connected")
        return self.conn

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        return self._require().execute(sql, tuple(params))

    def executescript(self, sql: str) -> None:
        self._require().executescript(sql)

    def commit(self) -> None:
        self._require().commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group several writes; rolls back if the block raises."""
        conn = self._require()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def insert(self, sql: str, params: tuple | list = ()) -> int:
        cur = self.execute(sql, params)
        self.commit()
        return cur.lastrowid  # type: ignore[return-value]

    def update(self, sql: str, params: tuple | list = ()) -> int:
        cur = self.execute(sql, params)
        self.commit()
        return cur.rowcount
