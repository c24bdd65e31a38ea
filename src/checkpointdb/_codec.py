"""Translation between checkpoint objects and database rows.

Everything here is pure: no I/O, no connection handling. Serializer
errors propagate unchanged.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

from checkpointdb.exceptions import SerializationError
from checkpointdb.serializers import Serializer
from checkpointdb.types import (
    TASKS,
    WRITES_IDX_MAP,
    Checkpoint,
    ChannelVersions,
    CheckpointConfig,
    CheckpointTuple,
    PendingWrite,
)

EMPTY = "empty"

BlobRow = tuple[str, str, str, str, str, Optional[bytes]]
WriteRow = tuple[str, str, str, str, int, str, str, bytes, str]


# === Dump ===


def dump_blobs(
    serializer: Serializer,
    thread_id: str,
    checkpoint_ns: str,
    values: Mapping[str, Any],
    versions: ChannelVersions | None,
) -> list[BlobRow]:
    """One blob row per channel in ``versions``.

    ``versions`` decides which channels changed this step. A channel with
    a new version but no value gets the ``("empty", None)`` sentinel.
    """
    if not versions:
        return []

    rows: list[BlobRow] = []
    for channel, version in versions.items():
        if channel in values:
            type_tag, data = serializer.serialize(values[channel])
        else:
            type_tag, data = EMPTY, None
        rows.append((thread_id, checkpoint_ns, channel, str(version), type_tag, data))
    return rows


def dump_sends(
    serializer: Serializer,
    thread_id: str,
    checkpoint_ns: str,
    checkpoint: Checkpoint,
) -> BlobRow | None:
    """Blob row holding the checkpoint's pending sends, if it has any."""
    if not checkpoint.pending_sends:
        return None
    type_tag, data = serializer.serialize(list(checkpoint.pending_sends))
    return (thread_id, checkpoint_ns, TASKS, checkpoint.id, type_tag, data)


def dump_checkpoint(serializer: Serializer, checkpoint: Checkpoint) -> tuple[str, bytes]:
    """Serialize the checkpoint body.

    Pending sends and channel values are stored as blobs, so the body
    carries neither.
    """
    body = checkpoint.to_dict()
    body["pending_sends"] = []
    del body["channel_values"]
    return serializer.serialize(body)


def dump_blob_versions(checkpoint: Checkpoint, new_versions: ChannelVersions | None) -> str:
    """JSON text of the blob versions the checkpoint's values are read from.

    ``new_versions`` take precedence over ``checkpoint.channel_versions``.
    A channel bumped this step without a value resolves to nothing, so it
    is left out; older checkpoints that stored a value under the same
    version keep reading it.
    """
    versions = {**checkpoint.channel_versions, **(new_versions or {})}
    return json.dumps(
        {
            channel: str(version)
            for channel, version in versions.items()
            if channel in checkpoint.channel_values or channel not in (new_versions or {})
        }
    )


def _strip_nulls(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, Mapping):
        return {_strip_nulls(k): _strip_nulls(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_strip_nulls(v) for v in value]
    return value


def dump_metadata(metadata: Mapping[str, Any] | None) -> str:
    """JSON text with null characters stripped from keys and strings.

    The metadata column is queried through SQLite's JSON functions, which
    stop at a null character. Stripping is lossy for metadata that
    legitimately contains one.
    """
    try:
        return json.dumps(_strip_nulls(dict(metadata or {})))
    except (TypeError, ValueError) as exc:
        raise SerializationError("Checkpoint metadata must be JSON serializable") from exc


def dump_writes(
    serializer: Serializer,
    thread_id: str,
    checkpoint_ns: str,
    checkpoint_id: str,
    task_id: str,
    writes: Sequence[tuple[str, Any]],
    task_path: str = "",
) -> list[WriteRow]:
    """One row per write; reserved channels use their fixed idx."""
    rows: list[WriteRow] = []
    for idx, (channel, value) in enumerate(writes):
        type_tag, data = serializer.serialize(value)
        rows.append(
            (
                thread_id,
                checkpoint_ns,
                checkpoint_id,
                task_id,
                WRITES_IDX_MAP.get(channel, idx),
                channel,
                type_tag,
                data,
                task_path,
            )
        )
    return rows


# === Load ===


def _unhex(value: str | None) -> bytes:
    return bytes.fromhex(value) if value else b""


def load_blobs(serializer: Serializer, rows: Iterable[Sequence[Any]] | None) -> dict[str, Any]:
    """Channel values from ``(channel, type, data)`` rows, skipping sentinels."""
    if not rows:
        return {}
    return {channel: serializer.deserialize(type_tag, data) for channel, type_tag, data in rows if type_tag != EMPTY}


def load_writes(serializer: Serializer, rows: Iterable[Sequence[Any]] | None) -> list[PendingWrite]:
    """``(task_id, channel, value)`` triples from ``(task_id, channel, type, data)`` rows."""
    if not rows:
        return []
    return [(task_id, channel, serializer.deserialize(type_tag, data)) for task_id, channel, type_tag, data in rows]


def load_metadata(text: str | None) -> dict[str, Any]:
    return json.loads(text) if text else {}


def parse_blob_array(text: str | None) -> list[tuple[str, str, bytes]]:
    """Decode the ``channel_values`` aggregate of SELECT_SQL."""
    if not text:
        return []
    return [(channel, type_tag, _unhex(data)) for channel, type_tag, data in json.loads(text)]


def parse_write_array(text: str | None) -> list[tuple[str, str, str, bytes]]:
    """Decode a writes aggregate of SELECT_SQL into ordered rows.

    Rows are ordered by task id, then idx, then insertion order.
    """
    if not text:
        return []
    entries = sorted(json.loads(text), key=lambda e: (e[0], e[1], e[2]))
    return [(task_id, channel, type_tag, _unhex(data)) for task_id, _idx, _seq, channel, type_tag, data in entries]


def decode_checkpoint_row(serializer: Serializer, row: Sequence[Any], config: CheckpointConfig | None = None) -> CheckpointTuple:
    """Rebuild a CheckpointTuple from one SELECT_SQL row.

    Args:
        serializer: Codec the values were written with.
        row: Columns in SELECT_SQL order.
        config: Identity the caller asked for. Its thread and namespace
            are echoed back; when omitted the row's own are used.
    """
    (
        thread_id,
        checkpoint_ns,
        checkpoint_id,
        parent_checkpoint_id,
        type_tag,
        body,
        metadata,
        channel_values,
        pending_writes,
        parent_sends,
        own_sends,
    ) = row

    if config is not None:
        thread_id = config.thread_id
        checkpoint_ns = config.ns

    data = serializer.deserialize(type_tag, body)
    checkpoint = Checkpoint.from_dict(data)
    checkpoint.channel_values = load_blobs(serializer, parse_blob_array(channel_values))

    sends = [value for _task, _channel, value in load_writes(serializer, parse_write_array(parent_sends))]
    if own_sends:
        sends_type, sends_data = json.loads(own_sends)
        sends.extend(serializer.deserialize(sends_type, _unhex(sends_data)))
    checkpoint.pending_sends = sends

    parent_config = (
        CheckpointConfig(thread_id=thread_id, checkpoint_ns=checkpoint_ns, checkpoint_id=parent_checkpoint_id)
        if parent_checkpoint_id
        else None
    )
    return CheckpointTuple(
        config=CheckpointConfig(thread_id=thread_id, checkpoint_ns=checkpoint_ns, checkpoint_id=checkpoint_id),
        checkpoint=checkpoint,
        metadata=load_metadata(metadata),
        parent_config=parent_config,
        pending_writes=load_writes(serializer, parse_write_array(pending_writes)),
    )
