"""Schema migration for checkpointer databases.

Migrations are addressed purely by position in ``MIGRATIONS`` and recorded
in the ``checkpoint_migrations`` ledger. Entries may only be appended:
reordering or removing one would make existing databases skip or repeat
steps.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from checkpointdb.exceptions import MigrationError

logger = logging.getLogger("checkpointdb")

LEDGER_TABLE = "checkpoint_migrations"

MIGRATIONS: tuple[str, ...] = (
    f"CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (v INTEGER PRIMARY KEY)",
    """
    CREATE TABLE IF NOT EXISTS checkpoints (
        thread_id TEXT NOT NULL,
        checkpoint_ns TEXT NOT NULL DEFAULT '',
        checkpoint_id TEXT NOT NULL,
        parent_checkpoint_id TEXT,
        type TEXT,
        checkpoint BLOB NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}',
        PRIMARY KEY (thread_id, checkpoint_ns, checkpoint_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoint_blobs (
        thread_id TEXT NOT NULL,
        checkpoint_ns TEXT NOT NULL DEFAULT '',
        channel TEXT NOT NULL,
        version TEXT NOT NULL,
        type TEXT NOT NULL,
        blob BLOB,
        PRIMARY KEY (thread_id, checkpoint_ns, channel, version)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoint_writes (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        thread_id TEXT NOT NULL,
        checkpoint_ns TEXT NOT NULL DEFAULT '',
        checkpoint_id TEXT NOT NULL,
        task_id TEXT NOT NULL,
        idx INTEGER NOT NULL,
        channel TEXT NOT NULL,
        type TEXT,
        blob BLOB NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS checkpoint_writes_key_idx
    ON checkpoint_writes(thread_id, checkpoint_ns, checkpoint_id, task_id, idx)
    """,
    "ALTER TABLE checkpoints ADD COLUMN blob_versions TEXT NOT NULL DEFAULT '{}'",
    "CREATE INDEX IF NOT EXISTS checkpoints_thread_id_idx ON checkpoints(thread_id)",
    "CREATE INDEX IF NOT EXISTS checkpoint_blobs_thread_id_idx ON checkpoint_blobs(thread_id)",
    "ALTER TABLE checkpoint_writes ADD COLUMN task_path TEXT NOT NULL DEFAULT ''",
)


async def detect_schema_version(conn: Any) -> int:
    """Return the highest applied migration index.

    Returns -1 when the ledger table does not exist yet. Existence is
    probed through ``sqlite_master`` so a failing ledger query is never
    mistaken for an empty database.
    """
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
        (LEDGER_TABLE,),
    )
    if await cursor.fetchone() is None:
        return -1

    cursor = await conn.execute(f"SELECT v FROM {LEDGER_TABLE} ORDER BY v DESC LIMIT 1")
    row = await cursor.fetchone()
    return row[0] if row else -1


async def apply_migrations(conn: Any, migrations: tuple[str, ...] = MIGRATIONS) -> list[int]:
    """Apply every migration newer than the ledger's version.

    Must run inside a transaction owned by the caller; on MigrationError
    the caller rolls back so no partial migration is ever committed.

    Returns:
        Indexes of the migrations applied by this call.
    """
    version = await detect_schema_version(conn)
    applied: list[int] = []

    for v in range(version + 1, len(migrations)):
        try:
            await conn.execute(migrations[v])
            await conn.execute(f"INSERT INTO {LEDGER_TABLE} (v) VALUES (?)", (v,))
        except sqlite3.Error as exc:
            raise MigrationError(v, f"Schema migration {v} failed: {exc}") from exc
        applied.append(v)

    if applied:
        logger.info("Applied checkpoint schema migrations %d..%d", applied[0], applied[-1])
    return applied
