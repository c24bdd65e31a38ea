"""Exceptions for checkpoint persistence."""

from __future__ import annotations


class CheckpointerError(Exception):
    """Base class for all checkpointer errors."""


class ConfigurationError(CheckpointerError):
    """Checkpoint config is missing a required identity component.

    Raised before any I/O happens, e.g. when ``put`` is called without a
    ``thread_id``.

    Attributes:
        missing: Name of the missing config key
        operation: Store operation that required it
        message: Human-readable error message
    """

    def __init__(
        self,
        missing: str,
        operation: str,
        message: str | None = None,
    ) -> None:
        self.missing = missing
        self.operation = operation
        self.message = message or self._default_message()
        super().__init__(self.message)

    def _default_message(self) -> str:
        return f"{self.operation}() requires '{self.missing}' in the checkpoint config"


class MigrationError(CheckpointerError):
    """A schema migration step failed.

    The whole ``setup()`` transaction is rolled back, so the ledger still
    records the last good version and ``setup()`` can be retried.

    Attributes:
        version: Index of the migration that failed
        message: Human-readable error message
    """

    def __init__(self, version: int, message: str | None = None) -> None:
        self.version = version
        self.message = message or f"Schema migration {version} failed; no migrations were applied"
        super().__init__(self.message)


class StoreError(CheckpointerError):
    """The underlying database failed during a store operation.

    Any open transaction has been rolled back before this is raised.
    The original driver error is available as ``__cause__``.

    Attributes:
        operation: Store operation that failed (``get``, ``put``, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        self.message = message or f"Checkpoint store operation '{operation}' failed"
        super().__init__(self.message)


class SerializationError(CheckpointerError):
    """A value could not be encoded or decoded by a serializer."""
