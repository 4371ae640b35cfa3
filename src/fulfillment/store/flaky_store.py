"""Fault-injecting record store for tests and failure drills.

Wraps another store and fails chosen calls with StoreError. Never selected
in production.
"""

from dataclasses import dataclass

import structlog

from fulfillment.store.port import RecordStore, StoreError

logger = structlog.get_logger(__name__)


@dataclass
class _FailureRule:
    operation: str
    aggregate_name: str | None
    times: int
    after: int

    def matches(self, operation: str, aggregate_cls) -> bool:
        if operation != self.operation:
            return False
        return self.aggregate_name is None or aggregate_cls.__name__ == self.aggregate_name


class FlakyRecordStore(RecordStore):
    """Delegates to `inner` except where a configured failure applies."""

    def __init__(self, inner: RecordStore):
        self.inner = inner
        self._rules: list[_FailureRule] = []

    def configure(self, operation: str, aggregate_cls=None, times: int = 1, after: int = 0):
        """Fail the next `times` matching calls, after letting `after` through."""
        self._rules.append(
            _FailureRule(
                operation=operation,
                aggregate_name=aggregate_cls.__name__ if aggregate_cls else None,
                times=times,
                after=after,
            )
        )

    def reset(self):
        self._rules.clear()

    def _maybe_fail(self, operation: str, aggregate_cls):
        for rule in self._rules:
            if not rule.matches(operation, aggregate_cls) or rule.times <= 0:
                continue
            if rule.after > 0:
                rule.after -= 1
                return
            rule.times -= 1
            logger.warning("Injected store failure", operation=operation, aggregate=aggregate_cls.__name__)
            raise StoreError(f"Injected failure: {operation} on {aggregate_cls.__name__}")

    def atomic(self):
        return self.inner.atomic()

    def get(self, aggregate_cls, identifier: str):
        self._maybe_fail("get", aggregate_cls)
        return self.inner.get(aggregate_cls, identifier)

    def scan(self, aggregate_cls, **filters) -> list:
        self._maybe_fail("scan", aggregate_cls)
        return self.inner.scan(aggregate_cls, **filters)

    def insert_if_absent(self, aggregate_cls, unique_key: dict, record):
        self._maybe_fail("insert_if_absent", aggregate_cls)
        return self.inner.insert_if_absent(aggregate_cls, unique_key, record)

    def conditional_update(self, aggregate_cls, identifier: str, expected: dict, change):
        self._maybe_fail("conditional_update", aggregate_cls)
        return self.inner.conditional_update(aggregate_cls, identifier, expected, change)
