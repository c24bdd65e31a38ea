"""Checkpoint types for graph state persistence."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from checkpointdb.exceptions import ConfigurationError

CHECKPOINT_FORMAT_VERSION = 1

# Channel names shared with the execution engine.
START = "__start__"
ERROR = "__error__"
SCHEDULED = "__scheduled__"
INTERRUPT = "__interrupt__"
RESUME = "__resume__"
TASKS = "__pregel_tasks"

# Writes to these channels get a fixed idx instead of their batch position.
WRITES_IDX_MAP: Mapping[str, int] = {
    START: 0,
    ERROR: -1,
    SCHEDULED: -2,
    INTERRUPT: -3,
    RESUME: -4,
}

ChannelVersion = Union[str, int, float]
ChannelVersions = dict[str, ChannelVersion]

PendingWrite = tuple[str, str, Any]
"""A stored write: ``(task_id, channel, value)``."""


def _utcnow_iso() -> str:
    """UTC-aware ISO timestamp (avoids deprecated utcnow)."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Checkpoint:
    """Snapshot of graph execution state at one step.

    Attributes:
        id: Caller-supplied checkpoint id. Must sort lexically in
            creation order; "latest" means the greatest id.
        channel_values: Channel name -> value at this step.
        channel_versions: Channel name -> version token of that value.
        versions_seen: Node name -> channel versions it has consumed.
        pending_sends: Messages queued for delivery at the next step.
        ts: ISO-8601 creation timestamp.
        v: Checkpoint format version.
    """

    id: str
    channel_values: dict[str, Any] = field(default_factory=dict)
    channel_versions: ChannelVersions = field(default_factory=dict)
    versions_seen: dict[str, ChannelVersions] = field(default_factory=dict)
    pending_sends: list[Any] = field(default_factory=list)
    ts: str = field(default_factory=_utcnow_iso)
    v: int = CHECKPOINT_FORMAT_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Plain dict of all fields."""
        return {
            "v": self.v,
            "id": self.id,
            "ts": self.ts,
            "channel_values": dict(self.channel_values),
            "channel_versions": dict(self.channel_versions),
            "versions_seen": {k: dict(v) for k, v in self.versions_seen.items()},
            "pending_sends": list(self.pending_sends),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Checkpoint:
        return cls(
            id=data["id"],
            channel_values=dict(data.get("channel_values") or {}),
            channel_versions=dict(data.get("channel_versions") or {}),
            versions_seen={k: dict(v) for k, v in (data.get("versions_seen") or {}).items()},
            pending_sends=list(data.get("pending_sends") or []),
            ts=data.get("ts", ""),
            v=data.get("v", CHECKPOINT_FORMAT_VERSION),
        )


@dataclass(frozen=True)
class CheckpointConfig:
    """Address of a checkpoint or a range of checkpoints.

    ``checkpoint_ns=None`` means "any namespace" when listing; reads and
    writes of a single checkpoint treat it as the root namespace ``""``.
    """

    thread_id: str | None = None
    checkpoint_ns: str | None = None
    checkpoint_id: str | None = None

    @property
    def ns(self) -> str:
        """Namespace with the root default applied."""
        return self.checkpoint_ns if self.checkpoint_ns is not None else ""

    def require(self, key: str, operation: str) -> str:
        """Return a required identity component or raise ConfigurationError."""
        value = getattr(self, key)
        if value is None or value == "":
            raise ConfigurationError(key, operation)
        return value

    def to_dict(self) -> dict[str, str | None]:
        return {
            "thread_id": self.thread_id,
            "checkpoint_ns": self.checkpoint_ns,
            "checkpoint_id": self.checkpoint_id,
        }

    @classmethod
    def coerce(cls, config: CheckpointConfig | Mapping[str, Any] | None) -> CheckpointConfig:
        """Accept a CheckpointConfig, a plain mapping, or None."""
        if config is None:
            return cls()
        if isinstance(config, CheckpointConfig):
            return config
        if not isinstance(config, Mapping):
            raise TypeError(f"Expected CheckpointConfig or mapping, got {type(config).__name__}")
        return cls(
            thread_id=config.get("thread_id"),
            checkpoint_ns=config.get("checkpoint_ns"),
            checkpoint_id=config.get("checkpoint_id"),
        )


@dataclass(frozen=True)
class CheckpointTuple:
    """A checkpoint together with everything stored alongside it."""

    config: CheckpointConfig
    checkpoint: Checkpoint
    metadata: dict[str, Any]
    parent_config: CheckpointConfig | None = None
    pending_writes: list[PendingWrite] = field(default_factory=list)
