"""Sequential SQL migration runner."""

from __future__ import annotations

import logging
from pathlib import Path

from icp_screener.db.database import Database

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def run_migrations(db: Database, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every ``*.sql`` file not yet recorded, in filename order.

    Returns the filenames applied by this call.
    """
    db.executescript("""
        CREATE TABLE IF NOT EXISTS _migrations (
            id INTEGER PRIMARY KEY,
            filename TEXT NOT NULL UNIQUE,
            applied_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
    """)
    applied = {row["filename"] for row in db.fetchall("SELECT filename FROM _migrations")}

    newly_applied = []
    for path in sorted(migrations_dir.glob("*.sql")):
        if path.name in applied:
            continue
        logger.info("Applying migration: %s", path.name)
        db.executescript(path.read_text(encoding="utf-8"))
        db.insert("INSERT INTO _migrations (filename) VALUES (?)", (path.name,))
        newly_applied.append(path.name)
    return newly_applied
