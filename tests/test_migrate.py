"""Tests for schema migrations."""

import pytest

from checkpointdb import MigrationError
from checkpointdb._migrate import LEDGER_TABLE, MIGRATIONS, apply_migrations, detect_schema_version

aiosqlite = pytest.importorskip("aiosqlite")


@pytest.fixture
async def conn(tmp_path):
    db = await aiosqlite.connect(str(tmp_path / "migrate.db"), isolation_level=None)
    yield db
    await db.close()


async def _tables(conn):
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row[0] for row in await cursor.fetchall()}


class TestDetectVersion:
    async def test_fresh_database(self, conn):
        assert await detect_schema_version(conn) == -1

    async def test_empty_ledger(self, conn):
        await conn.execute(MIGRATIONS[0])
        assert await detect_schema_version(conn) == -1

    async def test_after_migrations(self, conn):
        await apply_migrations(conn)
        assert await detect_schema_version(conn) == len(MIGRATIONS) - 1


class TestApplyMigrations:
    async def test_applies_all_in_order(self, conn):
        applied = await apply_migrations(conn)
        assert applied == list(range(len(MIGRATIONS)))
        assert {LEDGER_TABLE, "checkpoints", "checkpoint_blobs", "checkpoint_writes"} <= await _tables(conn)

        cursor = await conn.execute(f"SELECT v FROM {LEDGER_TABLE} ORDER BY v")
        assert [row[0] for row in await cursor.fetchall()] == applied

    async def test_idempotent(self, conn):
        await apply_migrations(conn)
        assert await apply_migrations(conn) == []

    async def test_appended_migration_runs_alone(self, conn):
        await apply_migrations(conn)
        extended = (*MIGRATIONS, "CREATE TABLE extra (x INTEGER)")
        assert await apply_migrations(conn, extended) == [len(MIGRATIONS)]
        assert "extra" in await _tables(conn)

    async def test_columns_added_by_later_migrations(self, conn):
        await apply_migrations(conn)
        cursor = await conn.execute("PRAGMA table_info(checkpoints)")
        assert "blob_versions" in {row[1] for row in await cursor.fetchall()}
        cursor = await conn.execute("PRAGMA table_info(checkpoint_writes)")
        assert "task_path" in {row[1] for row in await cursor.fetchall()}

    async def test_failure_reports_version(self, conn):
        broken = (*MIGRATIONS[:2], "CREATE TABLE broken (")
        with pytest.raises(MigrationError) as exc_info:
            await apply_migrations(conn, broken)
        assert exc_info.value.version == 2

    async def test_failure_rolls_back_with_transaction(self, conn):
        broken = (*MIGRATIONS[:3], "NOT VALID SQL")
        await conn.execute("BEGIN IMMEDIATE")
        with pytest.raises(MigrationError):
            await apply_migrations(conn, broken)
        await conn.rollback()

        assert await detect_schema_version(conn) == -1
        assert "checkpoints" not in await _tables(conn)
