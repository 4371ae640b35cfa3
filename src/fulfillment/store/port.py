"""Record store port — the storage operations the fulfillment workflow needs.

The workflow programs against this interface; adapters are swapped via
configuration. Conditional writes are the only way records change, so every
transition is checked against the state the caller expected to find.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager


class StoreError(Exception):
    """Infrastructure failure talking to the underlying store. Safe to retry."""


class AlreadyExists(Exception):
    """An insert lost to a record already holding the unique key."""

    def __init__(self, existing):
        self.existing = existing
        super().__init__(f"{type(existing).__name__} {existing.id} already exists")


class PreconditionFailed(Exception):
    """A conditional update found the record in a different state than expected."""

    def __init__(self, current, expected: dict):
        self.current = current
        self.expected = expected
        found = {field: getattr(current, field, None) for field in expected}
        super().__init__(f"{type(current).__name__} {current.id}: expected {expected}, found {found}")


class RecordStore(ABC):
    """Abstract interface for record store adapters."""

    @abstractmethod
    def get(self, aggregate_cls, identifier: str):
        """Fetch one record. Raises protean's ObjectNotFoundError if absent."""
        ...

    @abstractmethod
    def insert_if_absent(self, aggregate_cls, unique_key: dict, record):
        """Persist `record` unless a record matching `unique_key` exists.

        Raises:
            AlreadyExists: carrying the record that already holds the key.
        """
        ...

    @abstractmethod
    def conditional_update(
        self,
        aggregate_cls,
        identifier: str,
        expected: dict,
        change: Callable,
    ):
        """Apply `change` to the record only if its fields still equal `expected`.

        Returns the updated record.

        Raises:
            PreconditionFailed: carrying the record as currently stored.
        """
        ...

    @abstractmethod
    def scan(self, aggregate_cls, **filters) -> list:
        """All records whose fields equal `filters`."""
        ...

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Section in which other workflow writes cannot interleave."""
        ...
