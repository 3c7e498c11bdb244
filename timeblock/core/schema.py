"""SQLite schema management (code-first approach)."""

import logging

from timeblock.core import db_client
from timeblock.core.config import Constants


logger = logging.getLogger(__name__)


# Column names match the persisted document fields of earlier releases
ACTIVITIES_DDL = f"""
CREATE TABLE IF NOT EXISTS {Constants.ACTIVITIES_COLLECTION} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    scope TEXT NOT NULL,
    title TEXT NOT NULL,
    "initialDuration" INTEGER NOT NULL CHECK ("initialDuration" >= 1),
    duration INTEGER NOT NULL CHECK (duration >= 0),
    "endTime" TEXT,
    "isRunning" INTEGER NOT NULL DEFAULT 0,
    "isCompleted" INTEGER NOT NULL DEFAULT 0,
    "order" INTEGER NOT NULL DEFAULT 0 CHECK ("order" >= 0),
    "timeSpent" INTEGER NOT NULL DEFAULT 0 CHECK ("timeSpent" >= 0),
    "createdAt" TEXT NOT NULL
);
"""

ACTIVITIES_INDEX = (
    f"CREATE INDEX IF NOT EXISTS idx_activities_scope ON {Constants.ACTIVITIES_COLLECTION} (scope);"
)

COLLECTIONS = [Constants.ACTIVITIES_COLLECTION]


async def init_db(*, db_path: str | None = None) -> None:
    """Create the activity tables if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)
    await conn.execute(ACTIVITIES_DDL)
    await conn.execute(ACTIVITIES_INDEX)
    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})
