"""WHERE-clause construction for checkpoint lookups and history scans."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from checkpointdb.types import CheckpointConfig

_PATH = "'$.\"' || f.key || '\"'"

# Every filter key must exist in the stored metadata with an equal value of
# the same JSON type; integer and real count as one numeric type.
_METADATA_CONTAINS = (
    "NOT EXISTS ("
    "SELECT 1 FROM json_each(?{n}) AS f "
    f"WHERE json_type(checkpoints.metadata, {_PATH}) IS NULL "
    f"OR json_extract(checkpoints.metadata, {_PATH}) IS NOT f.value "
    f"OR replace(json_type(checkpoints.metadata, {_PATH}), 'integer', 'real') "
    "IS NOT replace(f.type, 'integer', 'real')"
    ")"
)


def search_where(
    config: CheckpointConfig | None = None,
    filter: Mapping[str, Any] | None = None,
    before: CheckpointConfig | None = None,
) -> tuple[str, list[Any]]:
    """Build the WHERE clause for a checkpoint query.

    Predicates are added in a fixed order (thread, namespace, checkpoint
    id, metadata filter, before cursor) and numbered ``?1, ?2, ...`` left
    to right, so callers can append further numbered parameters.

    Returns:
        ``(clause, args)`` where clause is ``""`` when nothing filters, or
        ``"WHERE ..."`` otherwise.
    """
    wheres: list[str] = []
    args: list[Any] = []

    def add(template: str, value: Any) -> None:
        args.append(value)
        wheres.append(template.format(n=len(args)))

    if config is not None:
        if config.thread_id is not None:
            add("thread_id = ?{n}", config.thread_id)
        if config.checkpoint_ns is not None:
            add("checkpoint_ns = ?{n}", config.checkpoint_ns)
        if config.checkpoint_id is not None:
            add("checkpoint_id = ?{n}", config.checkpoint_id)

    if filter:
        add(_METADATA_CONTAINS, json.dumps(dict(filter)))

    if before is not None and before.checkpoint_id is not None:
        add("checkpoint_id < ?{n}", before.checkpoint_id)

    clause = f"WHERE {' AND '.join(wheres)}" if wheres else ""
    return clause, args


def limit_clause(limit: int | None, args: list[Any]) -> str:
    """Append a numbered LIMIT parameter to ``args`` and return its clause."""
    if limit is None:
        return ""
    args.append(int(limit))
    return f" LIMIT ?{len(args)}"
