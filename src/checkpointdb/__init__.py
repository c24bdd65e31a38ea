"""Checkpointdb - durable checkpoint storage for graph execution engines.

Provides the ``Checkpointer`` ABC, the ``SqliteCheckpointer``
implementation, serializers, and the checkpoint data model.
"""

from checkpointdb.base import Checkpointer
from checkpointdb.exceptions import (
    CheckpointerError,
    ConfigurationError,
    MigrationError,
    SerializationError,
    StoreError,
)
from checkpointdb.serializers import JsonSerializer, PickleSerializer, Serializer
from checkpointdb.sqlite import SqliteCheckpointer
from checkpointdb.types import (
    WRITES_IDX_MAP,
    Checkpoint,
    CheckpointConfig,
    CheckpointTuple,
    PendingWrite,
)

__all__ = [
    # Stores
    "Checkpointer",
    "SqliteCheckpointer",
    # Data model
    "Checkpoint",
    "CheckpointConfig",
    "CheckpointTuple",
    "PendingWrite",
    "WRITES_IDX_MAP",
    # Serializers
    "Serializer",
    "JsonSerializer",
    "PickleSerializer",
    # Errors
    "CheckpointerError",
    "ConfigurationError",
    "MigrationError",
    "SerializationError",
    "StoreError",
]
