"""Serializers for checkpoint value storage."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from checkpointdb.exceptions import SerializationError


class Serializer(ABC):
    """Base class for typed value serialization.

    Checkpointers use serializers to convert channel values, pending
    writes and checkpoint bodies to ``(type_tag, bytes)`` pairs for
    storage and back. The type tag is opaque to the store, except that
    ``"empty"`` is reserved as the no-value sentinel.
    """

    @abstractmethod
    def serialize(self, value: Any) -> tuple[str, bytes]:
        """Convert value to a ``(type_tag, bytes)`` pair."""
        ...

    @abstractmethod
    def deserialize(self, type_tag: str, data: bytes) -> Any:
        """Convert a stored ``(type_tag, bytes)`` pair back to a value."""
        ...


class JsonSerializer(Serializer):
    """JSON serializer (default). Safe, human-readable, inspectable.

    Raw ``bytes`` values are stored verbatim under the ``"bytes"`` tag;
    everything else is encoded as UTF-8 JSON under the ``"json"`` tag.

    By default, raises SerializationError on non-JSON-serializable types.
    Pass ``lossy=True`` to fall back to ``str()`` for unsupported types.
    """

    def __init__(self, *, lossy: bool = False):
        self._default = str if lossy else None

    def serialize(self, value: Any) -> tuple[str, bytes]:
        if isinstance(value, (bytes, bytearray)):
            return "bytes", bytes(value)
        try:
            return "json", json.dumps(value, default=self._default).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Value of type {type(value).__name__} is not JSON serializable") from exc

    def deserialize(self, type_tag: str, data: bytes) -> Any:
        if type_tag == "bytes":
            return bytes(data)
        if type_tag != "json":
            raise SerializationError(f"JsonSerializer cannot decode type tag {type_tag!r}")
        try:
            return json.loads(bytes(data).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise SerializationError("Stored value is not valid JSON") from exc


class PickleSerializer(Serializer):
    """Pickle serializer for complex Python objects.

    WARNING: Pickle can execute arbitrary code on deserialization.
    Requires explicit ``allow_pickle=True`` to construct.
    """

    def __init__(self, *, allow_pickle: bool = False):
        if not allow_pickle:
            raise ValueError(
                "PickleSerializer requires explicit allow_pickle=True. "
                "Pickle can execute arbitrary code on deserialization. "
                "Only use with trusted data sources."
            )

    def serialize(self, value: Any) -> tuple[str, bytes]:
        import pickle

        try:
            return "pickle", pickle.dumps(value)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise SerializationError(f"Value of type {type(value).__name__} cannot be pickled") from exc

    def deserialize(self, type_tag: str, data: bytes) -> Any:
        import pickle

        if type_tag != "pickle":
            raise SerializationError(f"PickleSerializer cannot decode type tag {type_tag!r}")
        try:
            return pickle.loads(data)  # noqa: S301
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
            raise SerializationError("Stored value could not be unpickled") from exc
