"""SQL statements used by the SQLite checkpointer.

Blob-valued aggregates are returned as JSON arrays with ``hex()``-encoded
payloads so a checkpoint and everything stored alongside it comes back
from a single query.
"""

from __future__ import annotations

from checkpointdb.types import TASKS

# Explicit column order for SELECT queries; _codec.decode_checkpoint_row relies on it
SELECT_SQL = f"""
SELECT
    thread_id,
    checkpoint_ns,
    checkpoint_id,
    parent_checkpoint_id,
    type,
    checkpoint,
    metadata,
    (
        SELECT json_group_array(json_array(bl.channel, bl.type, hex(bl.blob)))
        FROM json_each(checkpoints.blob_versions) AS cv
        JOIN checkpoint_blobs AS bl
            ON bl.thread_id = checkpoints.thread_id
            AND bl.checkpoint_ns = checkpoints.checkpoint_ns
            AND bl.channel = cv.key
            AND bl.version = cv.value
    ) AS channel_values,
    (
        SELECT json_group_array(json_array(cw.task_id, cw.idx, cw.seq, cw.channel, cw.type, hex(cw.blob)))
        FROM checkpoint_writes AS cw
        WHERE cw.thread_id = checkpoints.thread_id
            AND cw.checkpoint_ns = checkpoints.checkpoint_ns
            AND cw.checkpoint_id = checkpoints.checkpoint_id
    ) AS pending_writes,
    (
        SELECT json_group_array(json_array(ps.task_id, ps.idx, ps.seq, ps.channel, ps.type, hex(ps.blob)))
        FROM checkpoint_writes AS ps
        WHERE ps.thread_id = checkpoints.thread_id
            AND ps.checkpoint_ns = checkpoints.checkpoint_ns
            AND ps.checkpoint_id = checkpoints.parent_checkpoint_id
            AND ps.channel = '{TASKS}'
    ) AS parent_sends,
    (
        SELECT json_array(sb.type, hex(sb.blob))
        FROM checkpoint_blobs AS sb
        WHERE sb.thread_id = checkpoints.thread_id
            AND sb.checkpoint_ns = checkpoints.checkpoint_ns
            AND sb.channel = '{TASKS}'
            AND sb.version = checkpoints.checkpoint_id
    ) AS own_sends
FROM checkpoints
"""

# A stored value is never replaced by the "empty" sentinel.
UPSERT_CHECKPOINT_BLOBS_SQL = """
INSERT INTO checkpoint_blobs (thread_id, checkpoint_ns, channel, version, type, blob)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (thread_id, checkpoint_ns, channel, version) DO UPDATE SET
    type = excluded.type,
    blob = excluded.blob
WHERE excluded.type != 'empty'
"""

UPSERT_CHECKPOINTS_SQL = """
INSERT INTO checkpoints (
    thread_id, checkpoint_ns, checkpoint_id, parent_checkpoint_id,
    type, checkpoint, metadata, blob_versions
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (thread_id, checkpoint_ns, checkpoint_id) DO UPDATE SET
    parent_checkpoint_id = excluded.parent_checkpoint_id,
    type = excluded.type,
    checkpoint = excluded.checkpoint,
    metadata = excluded.metadata,
    blob_versions = excluded.blob_versions
"""

INSERT_CHECKPOINT_WRITES_SQL = """
INSERT INTO checkpoint_writes (
    thread_id, checkpoint_ns, checkpoint_id, task_id, idx, channel, type, blob, task_path
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# checkpoint_writes has no unique key (append-only batches may repeat an idx),
# so upserting is delete-then-insert inside the caller's transaction.
DELETE_CHECKPOINT_WRITE_SQL = """
DELETE FROM checkpoint_writes
WHERE thread_id = ? AND checkpoint_ns = ? AND checkpoint_id = ? AND task_id = ? AND idx = ?
"""
