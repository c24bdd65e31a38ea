"""Tests for the connection pool."""

import asyncio

import pytest

from checkpointdb._pool import MEMORY, ConnectionPool

aiosqlite = pytest.importorskip("aiosqlite")


@pytest.fixture
async def pool(tmp_path):
    p = ConnectionPool(str(tmp_path / "pool.db"), size=2)
    yield p
    await p.close()


class TestSizing:
    def test_memory_is_single_connection(self):
        assert ConnectionPool(MEMORY, size=5).size == 1

    def test_rejects_zero(self):
        with pytest.raises(ValueError, match="at least 1"):
            ConnectionPool("x.db", size=0)

    async def test_reuses_idle_connection(self, pool):
        async with pool.connection() as first:
            pass
        async with pool.connection() as second:
            pass
        assert first is second
        assert len(pool._connections) == 1

    async def test_never_exceeds_size(self, pool):
        async def borrow():
            async with pool.connection():
                await asyncio.sleep(0.01)

        await asyncio.gather(*(borrow() for _ in range(6)))
        assert len(pool._connections) <= pool.size


class TestConnectionSettings:
    async def test_wal_and_busy_timeout(self, pool):
        async with pool.connection() as conn:
            cursor = await conn.execute("PRAGMA journal_mode")
            assert (await cursor.fetchone())[0].lower() == "wal"
            cursor = await conn.execute("PRAGMA busy_timeout")
            assert (await cursor.fetchone())[0] == 5000


class TestTransaction:
    async def test_commit(self, pool):
        async with pool.transaction() as conn:
            await conn.execute("CREATE TABLE t (x INTEGER)")
            await conn.execute("INSERT INTO t VALUES (1)")

        async with pool.connection() as conn:
            cursor = await conn.execute("SELECT x FROM t")
            assert await cursor.fetchall() == [(1,)]

    async def test_rollback_on_error(self, pool):
        async with pool.transaction() as conn:
            await conn.execute("CREATE TABLE t (x INTEGER)")

        with pytest.raises(RuntimeError, match="boom"):
            async with pool.transaction() as conn:
                await conn.execute("INSERT INTO t VALUES (1)")
                raise RuntimeError("boom")

        async with pool.connection() as conn:
            cursor = await conn.execute("SELECT count(*) FROM t")
            assert (await cursor.fetchone())[0] == 0
            assert conn.in_transaction is False

    async def test_close_waits_for_borrowed_connection(self, pool):
        async with pool.transaction() as conn:
            await conn.execute("CREATE TABLE t (x INTEGER)")
            await pool.close()
            await conn.execute("INSERT INTO t VALUES (1)")

        with pytest.raises(ValueError):
            await conn.execute("SELECT 1")
        async with pool.connection() as fresh:
            assert fresh is not conn
            cursor = await fresh.execute("SELECT x FROM t")
            assert await cursor.fetchall() == [(1,)]

    async def test_close_then_reopen(self, pool):
        async with pool.connection():
            pass
        await pool.close()
        assert pool._connections == []
        async with pool.connection() as conn:
            cursor = await conn.execute("SELECT 1")
            assert (await cursor.fetchone())[0] == 1
