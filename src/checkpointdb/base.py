"""Checkpointer base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from checkpointdb.serializers import JsonSerializer, Serializer
from checkpointdb.types import (
    ChannelVersion,
    ChannelVersions,
    Checkpoint,
    CheckpointConfig,
    CheckpointTuple,
)

ConfigLike = CheckpointConfig | Mapping[str, Any]


class Checkpointer(ABC):
    """Base class for checkpoint persistence.

    Any backend that implements ``get``, ``list``, ``put`` and
    ``put_writes`` over the checkpoint data model can back the execution
    engine. The engine calls ``put`` after each step and ``put_writes``
    as tasks produce output, and reads state back with ``get``/``list``.
    """

    def __init__(self, serializer: Serializer | None = None):
        self.serializer = serializer or JsonSerializer()

    # === Write Operations ===

    @abstractmethod
    async def put(
        self,
        config: ConfigLike,
        checkpoint: Checkpoint,
        metadata: Mapping[str, Any],
        new_versions: ChannelVersions,
    ) -> CheckpointConfig:
        """Store a checkpoint and the channel blobs it introduces.

        The incoming ``config.checkpoint_id`` becomes the parent of the
        stored checkpoint. Returns the config addressing the new checkpoint.
        """
        ...

    @abstractmethod
    async def put_writes(
        self,
        config: ConfigLike,
        writes: Sequence[tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        """Store writes a task made against the checkpoint in ``config``."""
        ...

    # === Read Operations ===

    @abstractmethod
    async def get(self, config: ConfigLike) -> CheckpointTuple | None:
        """Get one checkpoint tuple. Returns None if not found.

        Without a checkpoint id the latest checkpoint of the thread and
        namespace is returned.
        """
        ...

    @abstractmethod
    def list(
        self,
        config: ConfigLike | None,
        *,
        filter: Mapping[str, Any] | None = None,
        before: ConfigLike | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Iterate checkpoint tuples, newest first."""
        ...

    # === Versions ===

    def get_next_version(self, current: ChannelVersion | None, channel: str | None = None) -> str:
        """Next version token for a channel.

        Tokens are zero-padded so string order matches numeric order.
        """
        if current is None:
            current_v = 0
        elif isinstance(current, int):
            current_v = current
        else:
            current_v = int(str(current).split(".")[0])
        return f"{current_v + 1:032d}"

    # === Lifecycle ===

    async def setup(self) -> None:  # noqa: B027
        """Prepare storage (create tables, apply migrations, etc.)."""

    async def close(self) -> None:  # noqa: B027
        """Clean up resources (close connections, etc.)."""

    async def __aenter__(self) -> Checkpointer:
        await self.setup()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
