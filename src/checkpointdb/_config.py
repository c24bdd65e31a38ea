"""Project-level configuration from pyproject.toml.

Reads the [tool.checkpointdb] section to provide the database location,
pool settings and serializer choice for ``SqliteCheckpointer.from_config``.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from checkpointdb._pool import DEFAULT_BUSY_TIMEOUT, DEFAULT_POOL_SIZE
from checkpointdb.serializers import JsonSerializer, PickleSerializer, Serializer

DEFAULT_DB = "checkpoints.db"


@dataclass(frozen=True)
class CheckpointdbConfig:
    """Configuration from [tool.checkpointdb] in pyproject.toml."""

    db: str = DEFAULT_DB
    pool_size: int = DEFAULT_POOL_SIZE
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT
    serializer: Literal["json", "pickle"] = "json"
    allow_pickle: bool = False

    def __post_init__(self) -> None:
        if self.serializer not in ("json", "pickle"):
            raise ValueError(f'serializer must be "json" or "pickle", got {self.serializer!r}')
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be at least 1, got {self.pool_size}")

    def make_serializer(self) -> Serializer:
        if self.serializer == "pickle":
            return PickleSerializer(allow_pickle=self.allow_pickle)
        return JsonSerializer()


def find_pyproject(start: Path | None = None) -> Path | None:
    """Walk up from start directory to find pyproject.toml."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    if sys.version_info >= (3, 11):
        import tomllib
    else:
        import tomli as tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_config(start: Path | None = None) -> CheckpointdbConfig:
    """Load [tool.checkpointdb] from the nearest pyproject.toml.

    Returns default config if no pyproject.toml or no [tool.checkpointdb]
    section. A relative ``db`` path is resolved against the directory
    holding the pyproject.toml.
    """
    path = find_pyproject(start)
    if path is None:
        return CheckpointdbConfig()

    section = _load_toml(path).get("tool", {}).get("checkpointdb", {})
    if not section:
        return CheckpointdbConfig()

    db = section.get("db", DEFAULT_DB)
    if db != ":memory:" and not Path(db).is_absolute():
        db = str(path.parent / db)

    return CheckpointdbConfig(
        db=db,
        pool_size=int(section.get("pool_size", DEFAULT_POOL_SIZE)),
        busy_timeout=float(section.get("busy_timeout", DEFAULT_BUSY_TIMEOUT)),
        serializer=section.get("serializer", "json"),
        allow_pickle=bool(section.get("allow_pickle", False)),
    )
