"""SQLite-based checkpointer using aiosqlite."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from checkpointdb._codec import (
    decode_checkpoint_row,
    dump_blob_versions,
    dump_blobs,
    dump_checkpoint,
    dump_metadata,
    dump_sends,
    dump_writes,
)
from checkpointdb._config import load_config
from checkpointdb._migrate import apply_migrations
from checkpointdb._pool import DEFAULT_BUSY_TIMEOUT, DEFAULT_POOL_SIZE, MEMORY, ConnectionPool
from checkpointdb._query import limit_clause, search_where
from checkpointdb._sql import (
    DELETE_CHECKPOINT_WRITE_SQL,
    INSERT_CHECKPOINT_WRITES_SQL,
    SELECT_SQL,
    UPSERT_CHECKPOINT_BLOBS_SQL,
    UPSERT_CHECKPOINTS_SQL,
)
from checkpointdb.base import Checkpointer, ConfigLike
from checkpointdb.exceptions import StoreError
from checkpointdb.serializers import Serializer
from checkpointdb.types import (
    WRITES_IDX_MAP,
    ChannelVersions,
    Checkpoint,
    CheckpointConfig,
    CheckpointTuple,
)

logger = logging.getLogger("checkpointdb")


class SqliteCheckpointer(Checkpointer):
    """SQLite-based checkpoint persistence.

    Best for: local development, single-server deployments, simple production.

    Args:
        path: Path to SQLite database file, or ``":memory:"``.
        serializer: Value serializer (default: JSON).
        pool_size: Maximum number of pooled connections.
        busy_timeout: Seconds to wait on a locked database.

    Example::

        async with SqliteCheckpointer("./checkpoints.db") as saver:
            config = await saver.put(
                {"thread_id": "t1"},
                Checkpoint(id="c1", channel_values={"x": 1}),
                {"step": 0, "source": "input"},
                {"x": saver.get_next_version(None)},
            )
            latest = await saver.get({"thread_id": "t1"})
            async for item in saver.list({"thread_id": "t1"}, limit=10):
                ...
    """

    def __init__(
        self,
        path: str,
        *,
        serializer: Serializer | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        super().__init__(serializer=serializer)
        self._path = path
        self._pool = ConnectionPool(path, size=pool_size, busy_timeout=busy_timeout)
        self._is_setup = False
        self._sync_conn: sqlite3.Connection | None = None

    @classmethod
    def from_conn_string(cls, conn_string: str, **kwargs: Any) -> SqliteCheckpointer:
        """Create a checkpointer from a path or a ``sqlite:///path`` URL."""
        path = conn_string
        for prefix in ("sqlite:///", "sqlite://"):
            if path.startswith(prefix):
                path = path[len(prefix) :] or MEMORY
                break
        return cls(path, **kwargs)

    @property
    def path(self) -> str:
        return self._path

    @classmethod
    def from_config(cls, start: Path | None = None) -> SqliteCheckpointer:
        """Create a checkpointer from [tool.checkpointdb] in pyproject.toml."""
        config = load_config(start)
        return cls(
            config.db,
            serializer=config.make_serializer(),
            pool_size=config.pool_size,
            busy_timeout=config.busy_timeout,
        )

    # === Lifecycle ===

    async def setup(self) -> None:
        """Create tables and apply pending migrations in one transaction."""
        try:
            async with self._pool.transaction() as conn:
                await apply_migrations(conn)
        except sqlite3.Error as exc:
            raise StoreError("setup") from exc
        self._is_setup = True

    async def close(self) -> None:
        """Close database connections."""
        if self._sync_conn is not None:
            self._sync_conn.close()
            self._sync_conn = None
        await self._pool.close()
        self._is_setup = False

    async def _ensure_setup(self) -> None:
        """Lazy-setup on first use."""
        if not self._is_setup:
            await self.setup()

    # === Write ===

    async def put(
        self,
        config: ConfigLike,
        checkpoint: Checkpoint,
        metadata: Mapping[str, Any],
        new_versions: ChannelVersions,
    ) -> CheckpointConfig:
        """Store a checkpoint, its new channel blobs and its pending sends.

        All rows are written in one transaction. The incoming
        ``checkpoint_id`` is recorded as the parent.
        """
        cfg = CheckpointConfig.coerce(config)
        thread_id = cfg.require("thread_id", "put")
        checkpoint_ns = cfg.ns

        type_tag, body = dump_checkpoint(self.serializer, checkpoint)
        blobs = dump_blobs(self.serializer, thread_id, checkpoint_ns, checkpoint.channel_values, new_versions)
        sends = dump_sends(self.serializer, thread_id, checkpoint_ns, checkpoint)
        if sends is not None:
            blobs.append(sends)
        row = (
            thread_id,
            checkpoint_ns,
            checkpoint.id,
            cfg.checkpoint_id or None,
            type_tag,
            body,
            dump_metadata(metadata),
            dump_blob_versions(checkpoint, new_versions),
        )

        await self._ensure_setup()
        try:
            async with self._pool.transaction() as conn:
                await conn.executemany(UPSERT_CHECKPOINT_BLOBS_SQL, blobs)
                await conn.execute(UPSERT_CHECKPOINTS_SQL, row)
        except sqlite3.Error as exc:
            raise StoreError("put") from exc

        logger.debug("Stored checkpoint %s/%r/%s with %d blobs", thread_id, checkpoint_ns, checkpoint.id, len(blobs))
        return CheckpointConfig(thread_id=thread_id, checkpoint_ns=checkpoint_ns, checkpoint_id=checkpoint.id)

    async def put_writes(
        self,
        config: ConfigLike,
        writes: Sequence[tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        """Store a task's writes against a checkpoint.

        A batch made only of reserved channels (``WRITES_IDX_MAP``) replaces
        any earlier rows with the same task and idx. Any other batch is
        appended, since batch positions of independent calls can collide.
        """
        cfg = CheckpointConfig.coerce(config)
        thread_id = cfg.require("thread_id", "put_writes")
        checkpoint_id = cfg.require("checkpoint_id", "put_writes")
        if not writes:
            return

        rows = dump_writes(self.serializer, thread_id, cfg.ns, checkpoint_id, task_id, writes, task_path)
        upsert = all(channel in WRITES_IDX_MAP for channel, _ in writes)
        if upsert:
            # Last write wins for a repeated reserved channel within the batch
            rows = list({row[:5]: row for row in rows}.values())

        await self._ensure_setup()
        try:
            async with self._pool.transaction() as conn:
                if upsert:
                    await conn.executemany(DELETE_CHECKPOINT_WRITE_SQL, [row[:5] for row in rows])
                await conn.executemany(INSERT_CHECKPOINT_WRITES_SQL, rows)
        except sqlite3.Error as exc:
            raise StoreError("put_writes") from exc

        logger.debug(
            "Stored %d writes for task %s on checkpoint %s (%s)",
            len(rows),
            task_id,
            checkpoint_id,
            "upsert" if upsert else "append",
        )

    # === Read ===

    def _get_query(self, config: ConfigLike) -> tuple[str, list[Any], CheckpointConfig]:
        cfg = CheckpointConfig.coerce(config)
        lookup = CheckpointConfig(
            thread_id=cfg.require("thread_id", "get"),
            checkpoint_ns=cfg.ns,
            checkpoint_id=cfg.checkpoint_id or None,
        )
        where, args = search_where(lookup)
        query = SELECT_SQL + where
        if lookup.checkpoint_id is None:
            query += " ORDER BY checkpoint_id DESC" + limit_clause(1, args)
        return query, args, lookup

    def _list_query(
        self,
        config: ConfigLike | None,
        filter: Mapping[str, Any] | None,
        before: ConfigLike | None,
        limit: int | None,
    ) -> tuple[str, list[Any]]:
        cfg = CheckpointConfig.coerce(config) if config is not None else None
        before_cfg = CheckpointConfig.coerce(before) if before is not None else None
        where, args = search_where(cfg, filter, before_cfg)
        query = SELECT_SQL + where + " ORDER BY checkpoint_id DESC" + limit_clause(limit, args)
        return query, args

    async def get(self, config: ConfigLike) -> CheckpointTuple | None:
        """Get a checkpoint tuple by id, or the thread's latest one."""
        query, args, lookup = self._get_query(config)
        await self._ensure_setup()
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, args)
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise StoreError("get") from exc

        if row is None:
            return None
        return decode_checkpoint_row(self.serializer, row, lookup)

    async def list(
        self,
        config: ConfigLike | None,
        *,
        filter: Mapping[str, Any] | None = None,
        before: ConfigLike | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Iterate checkpoint tuples ordered by checkpoint id, newest first.

        Args:
            config: Thread, namespace and/or checkpoint id to match. A
                thread alone scans that thread's whole history; None
                matches every thread.
            filter: Metadata key/value pairs that must all match.
            before: Only checkpoints with an id lower than this config's.
            limit: Maximum number of checkpoints.
        """
        query, args = self._list_query(config, filter, before, limit)
        await self._ensure_setup()
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, args)
                rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise StoreError("list") from exc

        for row in rows:
            yield decode_checkpoint_row(self.serializer, row)

    # === Sync Reads ===

    def _sync_db(self) -> sqlite3.Connection:
        """Open a sync sqlite3 connection (lazy, cached).

        Reads only; call ``setup()`` once before using the sync readers on
        a new database.
        """
        if self._sync_conn is None:
            conn = sqlite3.connect(self._path, timeout=self._pool.busy_timeout)
            if self._path != MEMORY:
                # WAL mode allows concurrent readers alongside async writes
                conn.execute("PRAGMA journal_mode=WAL")
            self._sync_conn = conn
        return self._sync_conn

    def snapshot(self, config: ConfigLike) -> CheckpointTuple | None:
        """Get a checkpoint tuple synchronously.

        Same as ``get`` but uses stdlib ``sqlite3``, no await needed.
        """
        query, args, lookup = self._get_query(config)
        try:
            row = self._sync_db().execute(query, args).fetchone()
        except sqlite3.Error as exc:
            raise StoreError("get") from exc
        if row is None:
            return None
        return decode_checkpoint_row(self.serializer, row, lookup)

    def history(
        self,
        config: ConfigLike | None,
        *,
        filter: Mapping[str, Any] | None = None,
        before: ConfigLike | None = None,
        limit: int | None = None,
    ) -> Iterator[CheckpointTuple]:
        """Iterate checkpoint tuples synchronously, newest first."""
        query, args = self._list_query(config, filter, before, limit)
        try:
            rows = self._sync_db().execute(query, args).fetchall()
        except sqlite3.Error as exc:
            raise StoreError("list") from exc
        for row in rows:
            yield decode_checkpoint_row(self.serializer, row)
