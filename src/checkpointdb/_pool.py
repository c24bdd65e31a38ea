"""Bounded pool of aiosqlite connections.

Connections run in autocommit mode so every transaction is explicit:
``transaction()`` issues ``BEGIN IMMEDIATE`` and either ``COMMIT`` or
``ROLLBACK`` before the connection goes back to the pool.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

logger = logging.getLogger("checkpointdb")

MEMORY = ":memory:"
DEFAULT_POOL_SIZE = 5
DEFAULT_BUSY_TIMEOUT = 5.0


class ConnectionPool:
    """Lazily opened, bounded set of reusable connections to one database.

    An in-memory database is limited to one connection, since every new
    connection to ``:memory:`` would see its own empty database.

    Args:
        path: SQLite database path or ``":memory:"``.
        size: Maximum number of open connections.
        busy_timeout: Seconds a statement waits on a locked database.
    """

    def __init__(
        self,
        path: str,
        *,
        size: int = DEFAULT_POOL_SIZE,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        self.path = path
        self.size = 1 if path == MEMORY else size
        self.busy_timeout = busy_timeout
        self._idle: asyncio.Queue[aiosqlite.Connection] | None = None
        self._connections: list[aiosqlite.Connection] = []
        self._borrowed: set[aiosqlite.Connection] = set()
        self._opening = 0

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.path, timeout=self.busy_timeout, isolation_level=None)
        try:
            if self.path != MEMORY:
                await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout * 1000)}")
        except Exception:
            await conn.close()
            raise
        return conn

    async def _acquire(self) -> aiosqlite.Connection:
        if self._idle is None:
            self._idle = asyncio.Queue()
        if not self._idle.empty():
            return self._idle.get_nowait()
        if self._opening + len(self._connections) < self.size:
            # Slot is claimed before awaiting; size is never exceeded
            self._opening += 1
            try:
                conn = await self._open()
            finally:
                self._opening -= 1
            self._connections.append(conn)
            return conn
        return await self._idle.get()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection for the duration of the block."""
        conn = await self._acquire()
        self._borrowed.add(conn)
        try:
            yield conn
        finally:
            self._borrowed.discard(conn)
            if self._idle is not None and conn in self._connections:
                self._idle.put_nowait(conn)
            else:
                # Pool was closed while this connection was borrowed
                await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection inside one write transaction.

        Any exception, including cancellation, rolls the transaction back
        before it propagates.
        """
        async with self.connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.execute("COMMIT")
            except BaseException:
                logger.warning("Rolling back checkpoint transaction on %s", self.path)
                await conn.rollback()
                raise

    async def close(self) -> None:
        """Close idle connections; borrowed ones close when released.

        The pool stays usable and reopens connections on the next borrow.
        """
        connections, self._connections = self._connections, []
        self._idle = None
        for conn in connections:
            if conn not in self._borrowed:
                await conn.close()
